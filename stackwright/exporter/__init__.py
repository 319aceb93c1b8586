"""Exporters for the dependency graph."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stackwright.graph import DependencyGraph
    from stackwright.reconciler import Plan

FORMATS = ("mermaid", "json")


def export_graph(graph: DependencyGraph, fmt: str, plan: Plan | None = None) -> str:
    fmt = fmt.lower()
    if fmt == "mermaid":
        from stackwright.exporter.mermaid import render

        return render(graph, plan)

    if fmt == "json":
        import json

        data = {
            "nodes": [{"id": r.id, "kind": r.kind.value} for r in graph.model],
            "edges": [{"source": e.source, "target": e.target, "via": e.via} for e in graph.edges],
            "order": graph.topological_order(),
        }
        return json.dumps(data, indent=2)

    raise ValueError(f"Unknown export format: {fmt!r}. Supported: {', '.join(FORMATS)}")
