"""Mermaid flowchart exporter for the dependency graph."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from stackwright.spec import ResourceKind

if TYPE_CHECKING:
    from stackwright.graph import DependencyGraph
    from stackwright.reconciler import Plan

_CATEGORY: dict[ResourceKind, str] = {
    ResourceKind.REGISTRY: "storage",
    ResourceKind.CLUSTER: "compute",
    ResourceKind.TASK_DEFINITION: "compute",
    ResourceKind.SERVICE: "compute",
    ResourceKind.ROLE: "security",
    ResourceKind.POLICY_ATTACHMENT: "security",
    ResourceKind.SECURITY_GROUP: "security",
    ResourceKind.VPC: "network",
    ResourceKind.SUBNET: "network",
    ResourceKind.LOAD_BALANCER: "network",
    ResourceKind.TARGET_GROUP: "network",
    ResourceKind.LISTENER: "network",
}

_CLASSDEFS = """\
    classDef compute fill:#1e293b,stroke:#10b981,color:#f8fafc
    classDef storage fill:#1e293b,stroke:#6366f1,color:#f8fafc
    classDef network fill:#1e293b,stroke:#3b82f6,color:#f8fafc
    classDef security fill:#1e293b,stroke:#ef4444,color:#f8fafc"""

_ACTION_MARK = {"create": "+", "update": "~", "destroy": "-"}


def _safe_id(raw: str) -> str:
    return re.sub(r"[^a-zA-Z0-9_]", "_", raw)


def _node_ids(ids: list[str]) -> dict[str, str]:
    """Mermaid-safe node IDs, suffixed with _2, _3, ... where sanitising collides."""
    taken: set[str] = set()
    mapping: dict[str, str] = {}
    for rid in ids:
        base = candidate = _safe_id(rid)
        n = 1
        while candidate in taken:
            n += 1
            candidate = f"{base}_{n}"
        taken.add(candidate)
        mapping[rid] = candidate
    return mapping


def render(graph: DependencyGraph, plan: Plan | None = None) -> str:
    """Flowchart with one node per resource and one arrow per dependency edge.

    With a plan, node labels are prefixed with the pending action.
    """
    actions = {op.resource_id: op.action.value for op in plan.operations} if plan else {}
    node_ids = _node_ids([r.id for r in graph.model])
    lines: list[str] = ["flowchart LR", _CLASSDEFS]

    for resource in graph.model:
        node_id = node_ids[resource.id]
        label = f"{resource.id}<br/>{resource.kind.value}"
        if resource.id in actions:
            label = f"{_ACTION_MARK[actions[resource.id]]} {label}"
        shape = f"{node_id}[({label})]" if resource.kind == ResourceKind.REGISTRY else f"{node_id}[{label}]"
        lines.append(f"    {shape}")
        lines.append(f"    class {node_id} {_CATEGORY[resource.kind]}")

    if graph.edges:
        lines.append("")
    for edge in graph.edges:
        via = edge.via.split(".")[-1]
        lines.append(f"    {node_ids[edge.source]} -->|{via}| {node_ids[edge.target]}")

    return "\n".join(lines)
