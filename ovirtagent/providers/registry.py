"""Process-wide set of configured hypervisor endpoints, addressable by description."""

from __future__ import annotations

import threading

from loguru import logger

from ovirtagent.core.exceptions import HypervisorNotFoundError
from ovirtagent.providers.base import VMProvider

log = logger.bind(component="registry")


class HypervisorRegistry:
    """Endpoints known to this process.

    Registering an endpoint whose description is already present replaces it
    (reconfiguration); the replaced endpoint's connection is closed.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._endpoints: list[VMProvider] = []

    def register(self, endpoint: VMProvider) -> None:
        with self._lock:
            previous = [e for e in self._endpoints if e.description == endpoint.description]
            self._endpoints = [e for e in self._endpoints if e not in previous]
            self._endpoints.append(endpoint)
        for old in previous:
            if old is not endpoint:
                old.close()
        log.debug("Registered hypervisor {desc}", desc=endpoint.description)

    def unregister(self, description: str) -> None:
        with self._lock:
            self._endpoints = [e for e in self._endpoints if e.description != description]

    def resolve(self, description: str) -> VMProvider:
        """Find the endpoint with this description.

        Raises:
            HypervisorNotFoundError: nothing registered under that description.
        """
        with self._lock:
            for endpoint in self._endpoints:
                if endpoint.description == description:
                    return endpoint
        raise HypervisorNotFoundError(description)

    def all(self) -> dict[str, VMProvider]:
        with self._lock:
            return {e.description: e for e in self._endpoints}

    def close_all(self) -> None:
        with self._lock:
            endpoints = list(self._endpoints)
        for endpoint in endpoints:
            endpoint.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._endpoints)
