"""Finds where a running instance can be reached: guest IP addresses and VNC console."""

import logging

from vmctl.exceptions import PreconditionError
from vmctl.models.network import InstanceAddresses
from vmctl.services.hypervisor import Hypervisor, InstanceState

logger = logging.getLogger(__name__)


class AddressService:
    def __init__(self, hypervisor: Hypervisor):
        self.hypervisor = hypervisor

    def lookup(self, name: str) -> InstanceAddresses:
        """
        Raises:
            InstanceNotFoundError: If the instance does not exist
            PreconditionError: If the instance is not running
            ExecutionError: If no address source reports an address
        """
        state = self.hypervisor.get_info(name).state
        if state != InstanceState.RUNNING:
            raise PreconditionError(f"VM '{name}' is not running", context=f"Current state: {state.label}")

        lookup = self.hypervisor.interface_addresses(name)
        logger.debug("Addresses for %s came from the %s source", name, lookup.source)
        vnc_port = self.hypervisor.get_descriptor(name).graphics_port("vnc")
        return InstanceAddresses(name=name, lookup=lookup, vnc_port=vnc_port)
