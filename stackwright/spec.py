"""StackSpec — the declared resource set and the models it is made of.

A stack is a flat list of resources addressed by stable IDs. Resources never
hold each other; they name each other by ID, and the dependency graph is
derived from those names.
"""

from __future__ import annotations

import re
from enum import Enum
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

_ID_PATTERN = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_-]*$")


def _parse_status_codes(v: Any) -> Any:
    # "200,301,302" and "200-299" are both accepted, like the load balancer API
    if isinstance(v, str):
        codes: list[int] = []
        for part in v.split(","):
            part = part.strip()
            if not part:
                continue
            if "-" in part:
                lo, hi = part.split("-", 1)
                codes.extend(range(int(lo), int(hi) + 1))
            else:
                codes.append(int(part))
        return codes
    if isinstance(v, (set, frozenset, tuple)):
        return sorted(v)
    return v


class ResourceKind(str, Enum):
    REGISTRY = "Registry"
    CLUSTER = "Cluster"
    ROLE = "Role"
    POLICY_ATTACHMENT = "PolicyAttachment"
    TASK_DEFINITION = "TaskDefinition"
    VPC = "Vpc"
    SUBNET = "Subnet"
    LOAD_BALANCER = "LoadBalancer"
    SECURITY_GROUP = "SecurityGroup"
    TARGET_GROUP = "TargetGroup"
    LISTENER = "Listener"
    SERVICE = "Service"


class SecurityGroupRule(BaseModel):
    """One ingress or egress rule. Source is a CIDR list or another group, never both."""

    direction: Literal["ingress", "egress"] = "ingress"
    from_port: int = Field(ge=0, le=65535)
    to_port: int = Field(ge=0, le=65535)
    protocol: str = "tcp"
    cidr_blocks: list[str] = Field(default_factory=list)
    source_security_group: str | None = None
    description: str = ""

    @model_validator(mode="after")
    def _one_source(self) -> SecurityGroupRule:
        if self.cidr_blocks and self.source_security_group:
            raise ValueError("rule may set cidr_blocks or source_security_group, not both")
        if not self.cidr_blocks and not self.source_security_group:
            raise ValueError("rule needs either cidr_blocks or source_security_group")
        if self.from_port > self.to_port:
            raise ValueError(f"from_port {self.from_port} is greater than to_port {self.to_port}")
        return self

    @property
    def is_group_reference(self) -> bool:
        return self.source_security_group is not None

    def covers(self, port: int) -> bool:
        if self.protocol == "-1":
            return True
        return self.from_port <= port <= self.to_port


class HealthCheck(BaseModel):
    path: str = "/"
    matcher: list[int] = Field(default_factory=lambda: [200, 301, 302])
    port: int | str = "traffic-port"
    protocol: str = "HTTP"

    @field_validator("matcher", mode="before")
    @classmethod
    def _parse_matcher(cls, v: Any) -> Any:
        return _parse_status_codes(v)

    def accepts(self, status: int) -> bool:
        return status in self.matcher


class Resource(BaseModel):
    id: str
    kind: ResourceKind
    attributes: dict[str, Any] = Field(default_factory=dict)
    references: list[str] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def validate_id(cls, v: str) -> str:
        if not _ID_PATTERN.match(v):
            raise ValueError(f"Resource id {v!r} is not IaC-safe (must match [a-zA-Z_][a-zA-Z0-9_-]*)")
        return v

    @field_validator("references")
    @classmethod
    def _dedupe(cls, v: list[str]) -> list[str]:
        return list(dict.fromkeys(v))

    @model_validator(mode="after")
    def _no_self_reference(self) -> Resource:
        if self.id in self.references:
            raise ValueError(f"Resource {self.id!r} references itself")
        return self

    def rules(self, direction: str | None = None) -> list[SecurityGroupRule]:
        """Parsed security-group rules held in the ingress/egress attributes."""
        directions = [direction] if direction else ["ingress", "egress"]
        out = []
        for d in directions:
            for raw in self.attributes.get(d, []) or []:
                data = raw.model_dump() if isinstance(raw, SecurityGroupRule) else dict(raw)
                data["direction"] = d
                out.append(SecurityGroupRule.model_validate(data))
        return out

    def health_check(self) -> HealthCheck:
        return HealthCheck.model_validate(self.attributes.get("health_check") or {})


class TierPolicy(BaseModel):
    """Which sources may reach a security group's ingress.

    A chain of these describes an n-tier topology: edge accepts the internet,
    every further tier only accepts the tier in front of it.
    """

    group: str
    allowed_sources: list[str] = Field(default_factory=list)
    allow_cidr: bool = False
    description: str = ""


class StackConfig(BaseModel):
    """Configuration surface of the single-service stack."""

    name: str = "webapp"
    region: str = "us-east-1"
    image: str = "webapp:latest"
    desired_count: int = Field(default=1, ge=0)
    cpu: int = Field(default=256, gt=0)
    memory: int = Field(default=512, gt=0)
    listener_port: int = Field(default=80, ge=1, le=65535)
    container_port: int = Field(default=3000, ge=1, le=65535)
    health_check_path: str = "/"
    health_check_matcher: list[int] = Field(default_factory=lambda: [200, 301, 302])
    availability_zones: list[str] = Field(default_factory=lambda: ["a", "b", "c"])

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        if not _ID_PATTERN.match(v):
            raise ValueError(f"Stack name {v!r} must match [a-zA-Z_][a-zA-Z0-9_-]*")
        return v

    @field_validator("health_check_matcher", mode="before")
    @classmethod
    def _parse_matcher(cls, v: Any) -> Any:
        return _parse_status_codes(v)


class StackSpec(BaseModel):
    """The declared resource set. Declaration order is significant for tie-breaking."""

    name: str
    region: str = "us-east-1"
    config: StackConfig | None = None
    resources: list[Resource] = Field(default_factory=list)
    policies: list[TierPolicy] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)

    def to_yaml(self) -> str:
        data = self.model_dump(mode="json", exclude_none=True)
        data = _clean_empty(data)
        return yaml.dump(data, default_flow_style=False, sort_keys=False, allow_unicode=True)

    def to_json(self, indent: int = 2) -> str:
        return self.model_dump_json(indent=indent, exclude_none=True)

    @classmethod
    def from_yaml(cls, yaml_str: str) -> StackSpec:
        data = yaml.safe_load(yaml_str)
        return cls.model_validate(data)

    @classmethod
    def from_file(cls, path: str | Path) -> StackSpec:
        p = Path(path)
        text = p.read_text()
        if p.suffix in (".yaml", ".yml"):
            return cls.from_yaml(text)
        return cls.model_validate_json(text)


def _clean_empty(d: Any) -> Any:
    if isinstance(d, dict):
        return {k: _clean_empty(v) for k, v in d.items() if v not in ([], {}, None, "")}
    if isinstance(d, list):
        return [_clean_empty(i) for i in d]
    return d
