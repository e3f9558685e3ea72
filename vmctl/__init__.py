"""vmctl - VM lifecycle control for KVM/libvirt hosts."""

__version__ = "1.0.0"
