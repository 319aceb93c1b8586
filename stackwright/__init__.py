"""Stackwright — dependency-ordered provisioning for a load-balanced container service."""

from stackwright.errors import (
    CyclicDependencyError,
    DanglingSecurityGroupReferenceError,
    DuplicateIDError,
    HealthCheckUnreachableError,
    NetworkPolicyViolationError,
    NotFoundError,
    OperationTimeoutError,
    RemoteOperationError,
    ResourceInUseError,
    RoutingMismatchError,
    StackwrightError,
)
from stackwright.model import ResourceModel
from stackwright.spec import (
    HealthCheck,
    Resource,
    ResourceKind,
    SecurityGroupRule,
    StackConfig,
    StackSpec,
    TierPolicy,
)

__version__ = "0.1.0"

__all__ = [
    "ApplyResult",
    "CyclicDependencyError",
    "DanglingSecurityGroupReferenceError",
    "DependencyGraph",
    "detect_drift",
    "DriftReport",
    "DuplicateIDError",
    "HealthCheck",
    "HealthCheckUnreachableError",
    "NetworkPolicyValidator",
    "NetworkPolicyViolationError",
    "NotFoundError",
    "OperationTimeoutError",
    "Plan",
    "Reconciler",
    "RemoteOperationError",
    "Resource",
    "ResourceInUseError",
    "ResourceKind",
    "ResourceModel",
    "RoutingMismatchError",
    "SecurityGroupRule",
    "ServiceWiringValidator",
    "StackConfig",
    "StackSpec",
    "StackwrightError",
    "TierPolicy",
]


def __getattr__(name: str):
    # Lazy imports so `import stackwright` stays light for the CLI
    if name == "DependencyGraph":
        from stackwright.graph import DependencyGraph

        return DependencyGraph
    if name in ("Reconciler", "Plan", "ApplyResult"):
        from stackwright import reconciler

        return getattr(reconciler, name)
    if name == "NetworkPolicyValidator":
        from stackwright.network import NetworkPolicyValidator

        return NetworkPolicyValidator
    if name == "ServiceWiringValidator":
        from stackwright.wiring import ServiceWiringValidator

        return ServiceWiringValidator
    if name == "detect_drift":
        from stackwright.drift import detect_drift

        return detect_drift
    if name == "DriftReport":
        from stackwright.drift import DriftReport

        return DriftReport
    raise AttributeError(f"module 'stackwright' has no attribute {name!r}")
