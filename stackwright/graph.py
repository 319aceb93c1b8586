"""Dependency graph builder — derives a DAG over resource IDs from cross-resource references."""

from __future__ import annotations

import heapq
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any

from stackwright.errors import CyclicDependencyError, NotFoundError
from stackwright.model import ResourceModel
from stackwright.spec import Resource, ResourceKind

logger = logging.getLogger(__name__)

# Attribute paths that hold the ID (or list of IDs) of another resource.
_REFERENCE_FIELDS: dict[ResourceKind, tuple[str, ...]] = {
    ResourceKind.SUBNET: ("vpc",),
    ResourceKind.SECURITY_GROUP: ("vpc",),
    ResourceKind.TARGET_GROUP: ("vpc",),
    ResourceKind.LOAD_BALANCER: ("security_groups", "subnets"),
    ResourceKind.LISTENER: ("load_balancer", "default_target_group"),
    ResourceKind.POLICY_ATTACHMENT: ("role",),
    ResourceKind.TASK_DEFINITION: ("execution_role", "task_role"),
    ResourceKind.SERVICE: (
        "cluster",
        "task_definition",
        "subnets",
        "security_groups",
        "load_balancer.target_group",
    ),
}

WHITE, GREY, BLACK = 0, 1, 2


@dataclass(frozen=True)
class Edge:
    source: str  # must exist first
    target: str  # depends on source
    via: str  # attribute that produced the edge


def _lookup(attributes: dict[str, Any], path: str) -> Any:
    value: Any = attributes
    for key in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(key)
    return value


def _as_ids(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [v for v in value if isinstance(v, str)]


def resource_references(resource: Resource) -> list[tuple[str, str]]:
    """All (referenced_id, via) pairs for a resource, explicit and implied."""
    out: list[tuple[str, str]] = [(ref, "references") for ref in resource.references]
    for path in _REFERENCE_FIELDS.get(resource.kind, ()):
        out.extend((ref, path) for ref in _as_ids(_lookup(resource.attributes, path)))
    if resource.kind == ResourceKind.SECURITY_GROUP:
        for rule in resource.rules():
            if rule.source_security_group and rule.source_security_group != resource.id:
                out.append((rule.source_security_group, f"{rule.direction}.source_security_group"))
    return out


class DependencyGraph:
    """Directed acyclic graph where an edge A -> B means A must exist before B."""

    def __init__(self, model: ResourceModel):
        self.model = model
        self.edges: list[Edge] = []
        self.dangling: list[Edge] = []
        self._deps: dict[str, list[str]] = defaultdict(list)
        self._dependents: dict[str, list[str]] = defaultdict(list)

    @classmethod
    def build(cls, model: ResourceModel) -> DependencyGraph:
        """Derive every edge and reject the graph if it has a cycle."""
        graph = cls(model)
        for resource in model:
            for ref, via in resource_references(resource):
                if ref not in model:
                    # Group-to-group rule targets are reported by the network validator
                    if via.endswith("source_security_group"):
                        graph.dangling.append(Edge(ref, resource.id, via))
                        continue
                    raise NotFoundError(ref, referenced_by=resource.id)
                graph._add_edge(Edge(ref, resource.id, via))
        graph.check_acyclic()
        logger.debug("Built dependency graph: %d resources, %d edges", len(model), len(graph.edges))
        return graph

    def _add_edge(self, edge: Edge) -> None:
        if edge.source in self._deps[edge.target]:
            return
        self.edges.append(edge)
        self._deps[edge.target].append(edge.source)
        self._dependents[edge.source].append(edge.target)

    @property
    def nodes(self) -> list[str]:
        return self.model.ids()

    def dependencies(self, resource_id: str) -> list[str]:
        """Resources that must exist before resource_id."""
        return list(self._deps.get(resource_id, []))

    def dependents(self, resource_id: str) -> list[str]:
        """Resources that reference resource_id."""
        return list(self._dependents.get(resource_id, []))

    def check_acyclic(self) -> None:
        """Depth-first three-colour walk; reaching a grey node closes a cycle.

        Iterative, with one successor iterator per node on the current path,
        so reference chains of any depth are handled.
        """
        color = {nid: WHITE for nid in self.nodes}

        for root in self.nodes:
            if color[root] != WHITE:
                continue
            color[root] = GREY
            path = [root]
            successors = [iter(self._dependents.get(root, []))]
            while successors:
                for succ in successors[-1]:
                    if color[succ] == GREY:
                        raise CyclicDependencyError(path[path.index(succ) :] + [succ])
                    if color[succ] == WHITE:
                        color[succ] = GREY
                        path.append(succ)
                        successors.append(iter(self._dependents.get(succ, [])))
                        break
                else:
                    successors.pop()
                    color[path.pop()] = BLACK

    def topological_order(self) -> list[str]:
        """Kahn's algorithm; ready nodes are released in declaration order."""
        self.check_acyclic()
        rank = {nid: i for i, nid in enumerate(self.nodes)}
        remaining = {nid: len(self._deps.get(nid, [])) for nid in self.nodes}
        ready = [(rank[nid], nid) for nid, n in remaining.items() if n == 0]
        heapq.heapify(ready)

        order: list[str] = []
        while ready:
            _, nid = heapq.heappop(ready)
            order.append(nid)
            for succ in self._dependents.get(nid, []):
                remaining[succ] -= 1
                if remaining[succ] == 0:
                    heapq.heappush(ready, (rank[succ], succ))
        return order

    def reverse_order(self) -> list[str]:
        """Teardown order: every resource before the resources it references."""
        return list(reversed(self.topological_order()))

    def has_path(self, source: str, target: str) -> bool:
        seen: set[str] = set()
        pending = [source]
        while pending:
            nid = pending.pop()
            if nid == target:
                return True
            if nid in seen:
                continue
            seen.add(nid)
            pending.extend(self._dependents.get(nid, []))
        return False

    def levels(self) -> list[list[str]]:
        """Groups of resources that can be applied together, in dependency order."""
        depth: dict[str, int] = {}
        for nid in self.topological_order():
            deps = self._deps.get(nid, [])
            depth[nid] = 1 + max((depth[d] for d in deps), default=-1)
        out: list[list[str]] = [[] for _ in range(max(depth.values(), default=-1) + 1)]
        for nid in self.nodes:
            out[depth[nid]].append(nid)
        return out

    def to_dict(self) -> dict[str, list[str]]:
        return {nid: self.dependencies(nid) for nid in self.nodes}
