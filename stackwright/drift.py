"""Drift detection — compare the declared stack against what the provider holds."""

from __future__ import annotations

from dataclasses import dataclass

from stackwright.differ import AttributeChange, diff_resource
from stackwright.graph import DependencyGraph
from stackwright.model import ResourceModel
from stackwright.providers import DEFAULT_TIMEOUT, Provider


@dataclass
class DriftReport:
    """Result of comparing a declared stack against remote state."""

    changes: list[AttributeChange]
    drift_score: float  # 0.0 = identical, 1.0 = completely different
    drifted_resources: list[str]  # declared and deployed, attributes differ
    extra_resources: list[str]  # deployed but not declared
    missing_resources: list[str]  # declared but not deployed
    summary: str

    @property
    def has_drift(self) -> bool:
        return bool(self.drifted_resources or self.extra_resources or self.missing_resources)


def detect_drift(model: ResourceModel, provider: Provider, timeout: float = DEFAULT_TIMEOUT) -> DriftReport:
    graph = DependencyGraph.build(model)
    records = {r.id: r for r in provider.list(timeout=timeout)}

    missing = [rid for rid in model.ids() if rid not in records]
    extra = [rid for rid in records if rid not in model]

    changes: list[AttributeChange] = []
    drifted: list[str] = []
    for resource in model:
        record = records.get(resource.id)
        if record is None:
            continue
        resource_changes = diff_resource(resource, record, graph.dependencies(resource.id))
        if resource_changes:
            drifted.append(resource.id)
            changes.extend(resource_changes)

    total_issues = len(extra) + len(missing) + len(drifted)
    drift_score = round(min(1.0, total_issues / max(len(model), 1)), 3)

    return DriftReport(
        changes=changes,
        drift_score=drift_score,
        drifted_resources=drifted,
        extra_resources=extra,
        missing_resources=missing,
        summary=_build_drift_summary(extra, missing, drifted, changes, drift_score),
    )


def _build_drift_summary(
    extra: list[str],
    missing: list[str],
    drifted: list[str],
    changes: list[AttributeChange],
    score: float,
) -> str:
    if not extra and not missing and not drifted:
        return "No drift detected. Remote state matches the declared stack."

    parts = [f"Drift score: {score:.0%}"]

    if missing:
        parts.append(f"{len(missing)} resource(s) declared but not deployed: {', '.join(missing)}")
    if extra:
        parts.append(f"{len(extra)} resource(s) deployed but not declared: {', '.join(extra)}")
    if drifted:
        parts.append(f"{len(drifted)} resource(s) with attribute drift: {', '.join(drifted)}")
        for ch in changes:
            parts.append(f"  {ch.resource_id}.{ch.field}: {ch.old_value} -> {ch.new_value}")

    return "\n".join(parts)
