"""Compares desired resource state against what a provider reports."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from stackwright.spec import Resource


class AttributeChange(BaseModel):
    resource_id: str
    field: str
    old_value: str
    new_value: str


class ResourceRecord(BaseModel):
    """A resource as observed on the remote side."""

    id: str
    kind: str
    attributes: dict[str, Any]
    dependencies: list[str] = Field(default_factory=list)
    outputs: dict[str, str] = Field(default_factory=dict)
    sequence: int = 0  # creation order on the provider


def _fmt(value: Any) -> str:
    return "" if value is None else str(value)


def diff_resource(desired: Resource, observed: ResourceRecord, dependencies: list[str]) -> list[AttributeChange]:
    """Field-level changes needed to turn observed into desired. Empty means in sync."""
    changes: list[AttributeChange] = []

    if desired.kind.value != observed.kind:
        changes.append(
            AttributeChange(resource_id=desired.id, field="kind", old_value=observed.kind, new_value=desired.kind.value)
        )

    keys = list(dict.fromkeys([*desired.attributes, *observed.attributes]))
    for key in keys:
        new_val = desired.attributes.get(key)
        old_val = observed.attributes.get(key)
        if new_val != old_val:
            changes.append(
                AttributeChange(resource_id=desired.id, field=key, old_value=_fmt(old_val), new_value=_fmt(new_val))
            )

    if sorted(dependencies) != sorted(observed.dependencies):
        changes.append(
            AttributeChange(
                resource_id=desired.id,
                field="dependencies",
                old_value=", ".join(sorted(observed.dependencies)),
                new_value=", ".join(sorted(dependencies)),
            )
        )
    return changes
