"""Providers — the remote side the reconciler reads from and mutates."""

from __future__ import annotations

from abc import ABC, abstractmethod

from stackwright.differ import ResourceRecord
from stackwright.spec import Resource

DEFAULT_TIMEOUT = 30.0


class Provider(ABC):
    """Abstract base for a cloud control plane.

    Every call, read or mutation, takes the caller's timeout in seconds and
    raises OperationTimeoutError when it is exceeded. Reads return fresh state.
    """

    name: str

    @abstractmethod
    def read(self, resource_id: str, timeout: float = DEFAULT_TIMEOUT) -> ResourceRecord | None:
        """Current remote state of one resource, or None if it does not exist."""

    @abstractmethod
    def list(self, timeout: float = DEFAULT_TIMEOUT) -> list[ResourceRecord]:
        """Every resource the provider knows about, in creation order."""

    @abstractmethod
    def create(
        self, resource: Resource, dependencies: list[str], region: str, timeout: float = DEFAULT_TIMEOUT
    ) -> ResourceRecord:
        """Create a resource and return its recorded state including outputs."""

    @abstractmethod
    def update(
        self, resource: Resource, dependencies: list[str], region: str, timeout: float = DEFAULT_TIMEOUT
    ) -> ResourceRecord:
        """Bring an existing resource to the desired attributes."""

    @abstractmethod
    def delete(self, resource_id: str, region: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        """Delete a resource. Providers reject deleting a resource still referenced by another."""


def get_provider(name: str, **kwargs) -> Provider:
    """Factory: built-in providers first, then `stackwright.providers` entry points."""
    if name == "memory":
        from stackwright.providers.memory import InMemoryProvider

        return InMemoryProvider(**kwargs)

    if name == "local":
        from stackwright.providers.local import LocalStateProvider

        return LocalStateProvider(**kwargs)

    from stackwright.plugins import discover_providers

    plugins = discover_providers()
    if name in plugins:
        return plugins[name](**kwargs)

    available = ["memory", "local", *plugins]
    raise ValueError(f"Unknown provider: {name!r}. Available: {', '.join(available)}")


__all__ = ["DEFAULT_TIMEOUT", "Provider", "ResourceRecord", "get_provider"]
