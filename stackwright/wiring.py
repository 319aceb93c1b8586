"""Service wiring — listener, target group and service must route to the same place."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from stackwright.errors import HealthCheckUnreachableError, RoutingMismatchError
from stackwright.model import ResourceModel
from stackwright.spec import HealthCheck, Resource, ResourceKind


class HealthState(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


@dataclass(frozen=True)
class ServiceWiring:
    """Read-only view of listener port -> target group -> service container port."""

    listener_id: str
    listener_port: int | None
    target_group_id: str
    service_id: str
    container_name: str | None
    container_port: int | None
    health_check: HealthCheck

    def to_dict(self) -> dict:
        return {
            "listener": self.listener_id,
            "listener_port": self.listener_port,
            "target_group": self.target_group_id,
            "service": self.service_id,
            "container_name": self.container_name,
            "container_port": self.container_port,
            "health_check": self.health_check.model_dump(),
        }


@dataclass
class TrafficReport:
    service_id: str
    states: list[HealthState] = field(default_factory=list)

    @property
    def routable(self) -> list[bool]:
        return [s == HealthState.HEALTHY for s in self.states]

    @property
    def has_traffic_path(self) -> bool:
        """True only if every probe passed; one failed probe deregisters the target."""
        return bool(self.states) and all(self.routable)


def _binding(service: Resource) -> dict:
    return service.attributes.get("load_balancer") or {}


class ServiceWiringValidator:
    def validate(self, listener: Resource, target_group: Resource, service: Resource) -> ServiceWiring:
        listener_target = listener.attributes.get("default_target_group")
        binding = _binding(service)
        service_target = binding.get("target_group")

        if listener_target != service_target:
            raise RoutingMismatchError(listener_target, service_target)
        if target_group.id != listener_target:
            raise RoutingMismatchError(listener_target, target_group.id)

        hc = target_group.health_check()
        if not hc.path.strip():
            raise HealthCheckUnreachableError(target_group.id, "health check path is empty")
        if not hc.matcher:
            raise HealthCheckUnreachableError(target_group.id, "health check matcher accepts no status code")

        return ServiceWiring(
            listener_id=listener.id,
            listener_port=listener.attributes.get("port"),
            target_group_id=target_group.id,
            service_id=service.id,
            container_name=binding.get("container_name"),
            container_port=binding.get("container_port"),
            health_check=hc,
        )

    def validate_model(self, model: ResourceModel) -> list[ServiceWiring]:
        """Validate every load-balanced service against the listener that should feed it."""
        listeners = model.of_kind(ResourceKind.LISTENER)
        wirings = []
        for service in model.of_kind(ResourceKind.SERVICE):
            service_target = _binding(service).get("target_group")
            if service_target is None:
                continue
            listener = next(
                (lst for lst in listeners if lst.attributes.get("default_target_group") == service_target),
                listeners[0] if listeners else None,
            )
            if listener is None:
                raise RoutingMismatchError(None, service_target)
            target_group = model.get_resource(listener.attributes.get("default_target_group") or service_target)
            wiring = self.validate(listener, target_group, service)
            _check_port_admitted(model, service, wiring)
            wirings.append(wiring)
        return wirings


def _check_port_admitted(model: ResourceModel, service: Resource, wiring: ServiceWiring) -> None:
    """Health checks reach the container only if one of the service's groups admits its port."""
    groups = [model.get_resource(g) for g in service.attributes.get("security_groups", []) if g in model]
    if not groups or wiring.container_port is None:
        return
    if not any(rule.covers(wiring.container_port) for g in groups for rule in g.rules("ingress")):
        raise HealthCheckUnreachableError(
            wiring.target_group_id,
            f"no ingress rule on {', '.join(g.id for g in groups)} admits container port {wiring.container_port}",
        )


def evaluate_health(health_check: HealthCheck, responses: list[int]) -> list[HealthState]:
    """Map each probe's HTTP status to a health state using the target group matcher."""
    return [HealthState.HEALTHY if health_check.accepts(code) else HealthState.UNHEALTHY for code in responses]


def probe_service(wiring: ServiceWiring, responses: list[int]) -> TrafficReport:
    return TrafficReport(service_id=wiring.service_id, states=evaluate_health(wiring.health_check, responses))
