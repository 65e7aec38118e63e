"""VM providers.

Only the oVirt backend exists today; the orchestrator talks to the
VMProvider / VirtualMachine protocols so others can be added alongside.
"""

from ovirtagent.providers.base import VirtualMachine, VMProvider
from ovirtagent.providers.registry import HypervisorRegistry

__all__ = ["HypervisorRegistry", "VirtualMachine", "VMProvider"]
