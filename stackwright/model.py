"""Resource registry — the owned arena every other component addresses by ID."""

from __future__ import annotations

from collections.abc import Iterator

from stackwright.errors import DuplicateIDError, NotFoundError
from stackwright.spec import Resource, ResourceKind, StackSpec


class ResourceModel:
    """In-memory registry of declared resources, kept in declaration order."""

    def __init__(self, resources: list[Resource] | None = None):
        self._resources: dict[str, Resource] = {}
        for r in resources or []:
            self.add_resource(r)

    @classmethod
    def from_spec(cls, spec: StackSpec) -> ResourceModel:
        return cls(spec.resources)

    def add_resource(self, resource: Resource) -> None:
        if resource.id in self._resources:
            raise DuplicateIDError(resource.id)
        self._resources[resource.id] = resource

    def get_resource(self, resource_id: str) -> Resource:
        try:
            return self._resources[resource_id]
        except KeyError:
            raise NotFoundError(resource_id) from None

    def __contains__(self, resource_id: object) -> bool:
        return resource_id in self._resources

    def __iter__(self) -> Iterator[Resource]:
        return iter(self._resources.values())

    def __len__(self) -> int:
        return len(self._resources)

    def ids(self) -> list[str]:
        return list(self._resources)

    def position(self, resource_id: str) -> int:
        """Declaration index, used as the stable tie-breaker when ordering."""
        try:
            return self.ids().index(resource_id)
        except ValueError:
            raise NotFoundError(resource_id) from None

    def of_kind(self, kind: ResourceKind) -> list[Resource]:
        return [r for r in self._resources.values() if r.kind == kind]

    def security_groups(self) -> list[Resource]:
        return self.of_kind(ResourceKind.SECURITY_GROUP)
