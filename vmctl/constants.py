"""
vmctl Constants

Centralized constants for magic values, defaults, and configuration.
"""

# Hypervisor endpoints
LOCAL_URI = "qemu:///system"
REMOTE_URI_FORMAT = "qemu+ssh://{user}@{host}/system"
REMOTE_SCHEME = "qemu+ssh"

# Remote session configuration
SSH_CONNECT_TIMEOUT = 10
SSH_KEY_CANDIDATES = [
    "~/.ssh/id_ed25519",
    "~/.ssh/id_rsa",
    "~/.ssh/id_ecdsa",
]
CONNECTION_CANARY = "vmctl-connection-ok"

# Host layout
DEFAULT_IMAGES_DIR = "/var/lib/libvirt/images"
BASE_IMAGE_SUBDIR = "baseimg"
BOOT_CONFIG_SUBDIR = "cloud-init-iso"
DEFAULT_BASE_IMAGE_NAME = "ubuntu-22.04-server-cloudimg-amd64.img"
BASE_IMAGE_DOWNLOAD_URL = (
    "https://cloud-images.ubuntu.com/jammy/current/jammy-server-cloudimg-amd64.img"
)
STAGING_DIR_FORMAT = "/tmp/vmctl-cloudinit-{name}"
DEFAULT_NETWORK = "default"

# Tools required on the hypervisor host (tool -> package providing it)
REQUIRED_TOOLS = {
    "qemu-img": "qemu-utils",
    "genisoimage": "genisoimage",
    "mkpasswd": "whois",
}

# Deployment
DISK_SPACE_MARGIN_GB = 1
GIB = 1024 * 1024 * 1024
BOOT_CONFIG_VOLUME_ID = "cidata"
PASSWORD_HASH_METHOD = "SHA-512"
PASSWORD_HASH_ROUNDS = 4096

# First-boot configuration
BOOTSTRAP_PACKAGES = ["qemu-guest-agent", "cloud-init"]
BOOTSTRAP_COMMANDS = [
    "systemctl enable qemu-guest-agent",
    "systemctl start qemu-guest-agent",
    "echo 'Cloud-init setup complete' > /var/log/cloudinit-done",
]
ACCOUNT_GROUPS = "users, admin"
ACCOUNT_SHELL = "/bin/bash"
ACCOUNT_SUDO = "ALL=(ALL) NOPASSWD:ALL"

# Teardown
DEFAULT_SHUTDOWN_TIMEOUT = 30
SHUTDOWN_POLL_INTERVAL = 1.0

# Guest address sources, tried in order until one reports an address
ADDRESS_SOURCES = ["lease", "agent", "arp"]
VNC_BASE_PORT = 5900

# Block devices tried (in order) when measuring an instance's primary disk
PRIMARY_DISK_DEVICES = ["vda", "sda", "hda"]

# Resource limits
MIN_HOSTNAME_LENGTH = 1
MAX_HOSTNAME_LENGTH = 63
MIN_MEMORY_MB = 512
MAX_MEMORY_MB = 65536
MEMORY_STEP_MB = 512
MIN_VCPUS = 1
MAX_VCPUS = 32
MIN_DISK_GB = 10
MAX_DISK_GB = 2048
MAX_USERNAME_LENGTH = 32
MIN_PASSWORD_LENGTH = 8
MAX_PASSWORD_LENGTH = 128
MIN_PASSWORD_CLASSES = 2
SHORT_SSH_KEY_LENGTH = 100

RESERVED_HOSTNAMES = {"localhost", "default", "template", "test", "example"}
RESERVED_USERNAMES = {"root", "admin", "administrator", "daemon", "bin", "sys"}
SSH_KEY_PREFIXES = [
    "ssh-rsa",
    "ssh-dss",
    "ssh-ed25519",
    "ecdsa-sha2-nistp256",
    "ecdsa-sha2-nistp384",
    "ecdsa-sha2-nistp521",
]

# User registry
DEFAULT_USERS_FILE = "/var/lib/vmctl/users.json"
LOCKS_SUBDIR = "locks"
DEFAULT_ROLE = "user"
DEFAULT_MAX_INSTANCES = 5
DEFAULT_MAX_VCPUS = 8
DEFAULT_MAX_MEMORY_MB = 16384
DEFAULT_MAX_STORAGE_GB = 100

# Local configuration
CONFIG_DIR = "~/.vmctl"
CONFIG_FILE_NAME = "config.yml"
ENV_FILE_NAME = ".env"
DEFAULT_LOG_DIR = "~/.vmctl/logs"

# Log Configuration
LOG_DATE_FORMAT = "%Y-%m-%d"
LOG_TIME_FORMAT = "%H-%M-%S"

# Sensitive Keywords (for secret masking)
SECRET_MASK = "********"
