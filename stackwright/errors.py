"""Exception taxonomy for stackwright.

Graph and validation errors mean the declared stack itself is invalid and are
raised before any provider call. RemoteOperationError is the only error raised
mid-apply.
"""

from __future__ import annotations


class StackwrightError(Exception):
    """Top class for stackwright exceptions."""

    def __init__(self, msg: str, *args):
        super().__init__(msg, *args)
        self.msg = msg

    def __str__(self) -> str:
        return self.msg


class DuplicateIDError(StackwrightError):
    def __init__(self, resource_id: str):
        super().__init__(f"Resource {resource_id!r} is already declared")
        self.resource_id = resource_id


class NotFoundError(StackwrightError):
    def __init__(self, resource_id: str, referenced_by: str | None = None):
        msg = f"Resource {resource_id!r} not found"
        if referenced_by:
            msg += f" (referenced by {referenced_by!r})"
        super().__init__(msg)
        self.resource_id = resource_id
        self.referenced_by = referenced_by


class CyclicDependencyError(StackwrightError):
    def __init__(self, cycle: list[str]):
        super().__init__(f"Dependency cycle: {' -> '.join(cycle)}")
        self.cycle = cycle


class DanglingSecurityGroupReferenceError(StackwrightError):
    def __init__(self, group_id: str, missing_id: str, direction: str = "ingress"):
        super().__init__(
            f"Security group {group_id!r} has an {direction} rule referencing unknown group {missing_id!r}"
        )
        self.group_id = group_id
        self.missing_id = missing_id
        self.direction = direction


class NetworkPolicyViolationError(StackwrightError):
    def __init__(self, group_id: str, detail: str):
        super().__init__(f"Security group {group_id!r} violates network policy: {detail}")
        self.group_id = group_id
        self.detail = detail


class RoutingMismatchError(StackwrightError):
    def __init__(self, listener_target: str | None, service_target: str | None):
        super().__init__(
            f"Listener forwards to target group {listener_target!r} "
            f"but the service registers into {service_target!r}"
        )
        self.listener_target = listener_target
        self.service_target = service_target


class HealthCheckUnreachableError(StackwrightError):
    def __init__(self, target_group_id: str, detail: str):
        super().__init__(f"Target group {target_group_id!r} can never pass its health check: {detail}")
        self.target_group_id = target_group_id


class ResourceInUseError(StackwrightError):
    def __init__(self, resource_id: str, dependents: list[str]):
        super().__init__(f"Cannot destroy {resource_id!r}: still referenced by {', '.join(dependents)}")
        self.resource_id = resource_id
        self.dependents = dependents


class OperationTimeoutError(StackwrightError):
    def __init__(self, resource_id: str, timeout: float):
        super().__init__(f"Operation on {resource_id!r} timed out after {timeout:g}s")
        self.resource_id = resource_id
        self.timeout = timeout


class RemoteOperationError(StackwrightError):
    """A Create/Update/Destroy that failed against the provider."""

    def __init__(self, resource_id: str, action: str, position: int, cause: BaseException):
        super().__init__(f"{action} {resource_id!r} failed at plan step {position}: {cause}")
        self.resource_id = resource_id
        self.action = action
        self.position = position
        self.cause = cause

    @property
    def timed_out(self) -> bool:
        return isinstance(self.cause, OperationTimeoutError)
