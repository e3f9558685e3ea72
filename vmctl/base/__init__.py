"""
vmctl Base Command Classes

Abstract base classes for consistent command structure.
"""

from .base_command import BaseCommand
from .hypervisor_command import HypervisorCommand

__all__ = [
    "BaseCommand",
    "HypervisorCommand",
]
