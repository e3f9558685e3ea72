"""Domain descriptor and boot-config document tests."""

import pytest
import yaml

from vmctl.models.deployment import instance_name_for, parse_instance_name
from vmctl.models.descriptor import DiskDevice, DomainDescriptor
from vmctl.services.boot_config import BootConfig

DOMAIN_XML = """
<domain type='kvm' id='7'>
  <name>alice-web1</name>
  <uuid>5f1c2f3e-1111-2222-3333-444455556666</uuid>
  <memory unit='GiB'>2</memory>
  <vcpu placement='static'>2</vcpu>
  <devices>
    <disk type='file' device='disk'>
      <driver name='qemu' type='qcow2'/>
      <source file='/var/lib/libvirt/images/alice-web1.qcow2'/>
      <target dev='vda' bus='virtio'/>
    </disk>
    <disk type='file' device='cdrom'>
      <driver name='qemu' type='raw'/>
      <source file='/var/lib/libvirt/images/cloud-init-iso/alice-web1-cloud-init.iso'/>
      <target dev='hdc' bus='ide'/>
      <readonly/>
    </disk>
    <disk type='file' device='cdrom'>
      <source file='/srv/isos/ubuntu-22.04-live-server-amd64.iso'/>
      <target dev='hdd' bus='ide'/>
    </disk>
    <disk type='block' device='disk'>
      <source dev='/dev/vg0/alice-data'/>
      <target dev='vdb' bus='virtio'/>
    </disk>
    <disk type='file' device='cdrom'>
      <target dev='hde' bus='ide'/>
    </disk>
    <interface type='network'>
      <source network='default'/>
    </interface>
    <interface type='bridge'>
      <source bridge='br0'/>
    </interface>
    <graphics type='vnc' port='5901' autoport='yes' listen='127.0.0.1'/>
    <graphics type='spice' autoport='yes'/>
  </devices>
</domain>
"""


class TestDomainDescriptor:
    def test_parse(self):
        descriptor = DomainDescriptor.from_xml(DOMAIN_XML)

        assert descriptor.name == "alice-web1"
        assert descriptor.uuid == "5f1c2f3e-1111-2222-3333-444455556666"
        assert descriptor.memory_mb == 2048
        assert descriptor.vcpus == 2
        assert len(descriptor.disks) == 5
        assert descriptor.networks == ["default"]
        assert descriptor.graphics_port("vnc") == 5901
        assert descriptor.graphics_port("spice") is None

    def test_disk_attributes(self):
        root, boot_iso, _, block, empty = DomainDescriptor.from_xml(DOMAIN_XML).disks
        assert (root.target, root.bus, root.format) == ("vda", "virtio", "qcow2")
        assert boot_iso.readonly and boot_iso.is_boot_config
        assert block.type == "block"
        assert empty.source is None

    def test_reclaimable_paths(self):
        descriptor = DomainDescriptor.from_xml(DOMAIN_XML)
        assert descriptor.reclaimable_paths() == [
            "/var/lib/libvirt/images/alice-web1.qcow2",
            "/var/lib/libvirt/images/cloud-init-iso/alice-web1-cloud-init.iso",
        ]
        assert descriptor.primary_disk().source == "/var/lib/libvirt/images/alice-web1.qcow2"

    @pytest.mark.parametrize(
        "source, reclaimable",
        [
            ("/images/a.qcow2", True),
            ("/images/a-cidata.ISO", True),
            ("/images/cloudinit/a.iso", True),
            ("/isos/debian-12.iso", False),
            (None, False),
        ],
    )
    def test_disk_reclaimable(self, source, reclaimable):
        assert DiskDevice(source=source).is_reclaimable is reclaimable

    def test_memory_units(self):
        xml = "<domain><name>x</name><memory>1048576</memory></domain>"
        assert DomainDescriptor.from_xml(xml).memory_mb == 1024
        xml = "<domain><name>x</name><memory unit='MiB'>512</memory></domain>"
        assert DomainDescriptor.from_xml(xml).memory_mb == 512

    def test_rejects_non_domain_documents(self):
        with pytest.raises(ValueError):
            DomainDescriptor.from_xml("<network><name>default</name></network>")
        with pytest.raises(ValueError):
            DomainDescriptor.from_xml("<domain>")


class TestInstanceNames:
    def test_owner_prefix(self):
        assert instance_name_for("alice", "web-1") == "alice-web-1"
        parsed = parse_instance_name("alice-web-1")
        assert (parsed.owner, parsed.hostname) == ("alice", "web-1")
        assert str(parsed) == "alice-web-1"

    @pytest.mark.parametrize("name", ["legacy", "-web1", "alice-"])
    def test_unowned_names(self, name):
        assert parse_instance_name(name) is None


class TestBootConfig:
    def test_password_account(self):
        config = BootConfig("alice-web1", "web1", "ubuntu", password_hash="$6$abc")
        account = config.account()
        assert account["passwd"] == "$6$abc"
        assert account["lock_passwd"] is False
        assert "ssh_authorized_keys" not in account
        assert config.user_data()["ssh_pwauth"] is True

    def test_ssh_key_account(self):
        config = BootConfig("alice-web1", "web1", "ubuntu", ssh_key="ssh-ed25519 AAAA alice")
        user_data = yaml.safe_load(config.render_user_data())
        account = user_data["users"][0]
        assert account["ssh_authorized_keys"] == ["ssh-ed25519 AAAA alice"]
        assert "passwd" not in account
        assert user_data["ssh_pwauth"] is False
        assert user_data["fqdn"] == "web1.local"
        assert "qemu-guest-agent" in user_data["packages"]

    def test_exactly_one_credential(self):
        with pytest.raises(ValueError):
            BootConfig("alice-web1", "web1", "ubuntu")
        with pytest.raises(ValueError):
            BootConfig("alice-web1", "web1", "ubuntu", password_hash="$6$x", ssh_key="ssh-rsa AAAA")
