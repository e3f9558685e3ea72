"""Guest address lookup tests."""

import pytest

from vmctl.exceptions import ExecutionError, InstanceNotFoundError, PreconditionError
from vmctl.models.descriptor import GraphicsDevice
from vmctl.models.network import AddressLookup, IPAddress, NetworkInterface
from vmctl.services.address_service import AddressService
from vmctl.services.hypervisor import InstanceState


def eth0(*addresses):
    return [NetworkInterface(name="vnet0", hwaddr="52:54:00:12:34:56", addresses=list(addresses))]


LEASE_IP = IPAddress("ipv4", "192.168.122.15", 24)
AGENT_IPS = [IPAddress("ipv4", "127.0.0.1", 8), IPAddress("ipv6", "fe80::1", 64), IPAddress("ipv4", "10.0.0.7", 16)]


class TestSourceFallback:
    def test_lease_answers_first(self, hypervisor):
        hypervisor.add_instance("alice-web1")
        hypervisor.address_answers["alice-web1"] = {"lease": eth0(LEASE_IP), "agent": eth0(*AGENT_IPS)}

        lookup = hypervisor.interface_addresses("alice-web1")

        assert lookup.source == "lease"
        assert lookup.primary_ip == "192.168.122.15"
        assert [c for c in hypervisor.calls if c[0] == "query_addresses"] == [
            ("query_addresses", "alice-web1", "lease")
        ]

    def test_falls_through_failed_and_empty_sources(self, hypervisor):
        hypervisor.add_instance("alice-web1")
        hypervisor.address_answers["alice-web1"] = {"agent": eth0(), "arp": eth0(*AGENT_IPS)}

        lookup = hypervisor.interface_addresses("alice-web1")

        assert lookup.source == "arp"
        assert lookup.primary_ip == "10.0.0.7"
        sources = [c[2] for c in hypervisor.calls if c[0] == "query_addresses"]
        assert sources == ["lease", "agent", "arp"]

    def test_no_source_knows_an_address(self, hypervisor):
        hypervisor.add_instance("alice-web1")
        hypervisor.address_answers["alice-web1"] = {"lease": eth0()}

        with pytest.raises(ExecutionError) as exc:
            hypervisor.interface_addresses("alice-web1")

        assert "may still be booting" in exc.value.message
        assert exc.value.context == "lease: no addresses; agent: agent unavailable; arp: arp unavailable"

    def test_primary_ip_skips_loopback_and_ipv6(self):
        assert AddressLookup("agent", eth0(*AGENT_IPS)).primary_ip == "10.0.0.7"
        assert AddressLookup("agent", eth0(IPAddress("ipv6", "fe80::1", 64))).primary_ip is None


class TestAddressService:
    def test_lookup_with_vnc_console(self, hypervisor):
        instance = hypervisor.add_instance("alice-web1")
        instance.descriptor.graphics.append(GraphicsDevice(type="vnc", port=5901))
        hypervisor.address_answers["alice-web1"] = {"lease": eth0(LEASE_IP)}

        addresses = AddressService(hypervisor).lookup("alice-web1")

        assert addresses.to_dict() == {
            "name": "alice-web1",
            "source": "lease",
            "primary_ip": "192.168.122.15",
            "interfaces": [
                {
                    "name": "vnet0",
                    "hwaddr": "52:54:00:12:34:56",
                    "addrs": [{"type": "ipv4", "addr": "192.168.122.15", "prefix": 24}],
                }
            ],
            "vnc": {"port": 5901, "display": ":1"},
        }

    def test_without_graphics(self, hypervisor):
        hypervisor.add_instance("alice-web1")
        hypervisor.address_answers["alice-web1"] = {"lease": eth0(LEASE_IP)}

        addresses = AddressService(hypervisor).lookup("alice-web1")

        assert addresses.vnc_port is None
        assert "vnc" not in addresses.to_dict()

    @pytest.mark.parametrize("state", [InstanceState.SHUTOFF, InstanceState.PAUSED])
    def test_requires_running_instance(self, hypervisor, state):
        hypervisor.add_instance("alice-web1", state=state)

        with pytest.raises(PreconditionError) as exc:
            AddressService(hypervisor).lookup("alice-web1")

        assert exc.value.message == "VM 'alice-web1' is not running"
        assert not any(c[0] == "query_addresses" for c in hypervisor.calls)

    def test_missing_instance(self, hypervisor):
        with pytest.raises(InstanceNotFoundError):
            AddressService(hypervisor).lookup("alice-ghost")
