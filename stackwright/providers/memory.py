"""In-memory control plane used for dry runs, tests and as the base of the local state provider."""

from __future__ import annotations

import copy
import hashlib
import logging
import threading
import time

from stackwright.differ import ResourceRecord
from stackwright.errors import NotFoundError, OperationTimeoutError, ResourceInUseError
from stackwright.providers import DEFAULT_TIMEOUT, Provider
from stackwright.spec import Resource, ResourceKind

logger = logging.getLogger(__name__)

_SERVICE_PREFIX = {
    ResourceKind.REGISTRY: "ecr",
    ResourceKind.CLUSTER: "ecs",
    ResourceKind.ROLE: "iam",
    ResourceKind.POLICY_ATTACHMENT: "iam",
    ResourceKind.TASK_DEFINITION: "ecs",
    ResourceKind.VPC: "ec2",
    ResourceKind.SUBNET: "ec2",
    ResourceKind.SECURITY_GROUP: "ec2",
    ResourceKind.LOAD_BALANCER: "elasticloadbalancing",
    ResourceKind.TARGET_GROUP: "elasticloadbalancing",
    ResourceKind.LISTENER: "elasticloadbalancing",
    ResourceKind.SERVICE: "ecs",
}


class InMemoryProvider(Provider):
    """A provider that keeps remote state in a dict.

    latency simulates how long a mutation of a resource takes and
    read_latency how long reading it takes (key "*" for list); a call whose
    latency exceeds the caller's timeout fails without being applied.
    failures maps resource IDs to the exception their next mutation raises.
    """

    name = "memory"

    def __init__(
        self,
        latency: dict[str, float] | None = None,
        read_latency: dict[str, float] | None = None,
        failures: dict[str, Exception] | None = None,
        account_id: str = "000000000000",
    ):
        self.latency = dict(latency or {})
        self.read_latency = dict(read_latency or {})
        self.failures = dict(failures or {})
        self.account_id = account_id
        self.calls: list[tuple[str, str]] = []
        self._records: dict[str, ResourceRecord] = {}
        self._sequence = 0
        self._lock = threading.Lock()

    # --- reads ---

    def read(self, resource_id: str, timeout: float = DEFAULT_TIMEOUT) -> ResourceRecord | None:
        self._wait("read", resource_id, self.read_latency.get(resource_id, 0.0), timeout)
        with self._lock:
            record = self._records.get(resource_id)
            return record.model_copy(deep=True) if record else None

    def list(self, timeout: float = DEFAULT_TIMEOUT) -> list[ResourceRecord]:
        self._wait("list", "*", self.read_latency.get("*", 0.0), timeout)
        with self._lock:
            records = sorted(self._records.values(), key=lambda r: r.sequence)
            return [r.model_copy(deep=True) for r in records]

    # --- mutations ---

    def create(
        self, resource: Resource, dependencies: list[str], region: str, timeout: float = DEFAULT_TIMEOUT
    ) -> ResourceRecord:
        self._simulate("create", resource.id, timeout)
        with self._lock:
            if resource.id in self._records:
                raise ValueError(f"{resource.kind.value} {resource.id!r} already exists")
            self._sequence += 1
            record = ResourceRecord(
                id=resource.id,
                kind=resource.kind.value,
                attributes=copy.deepcopy(resource.attributes),
                dependencies=list(dependencies),
                outputs=self._outputs(resource, region),
                sequence=self._sequence,
            )
            self._records[resource.id] = record
            self.calls.append(("create", resource.id))
            self._persist()
            return record.model_copy(deep=True)

    def update(
        self, resource: Resource, dependencies: list[str], region: str, timeout: float = DEFAULT_TIMEOUT
    ) -> ResourceRecord:
        self._simulate("update", resource.id, timeout)
        with self._lock:
            current = self._records.get(resource.id)
            if current is None:
                raise NotFoundError(resource.id)
            record = current.model_copy(
                update={
                    "kind": resource.kind.value,
                    "attributes": copy.deepcopy(resource.attributes),
                    "dependencies": list(dependencies),
                    "outputs": self._outputs(resource, region),
                }
            )
            self._records[resource.id] = record
            self.calls.append(("update", resource.id))
            self._persist()
            return record.model_copy(deep=True)

    def delete(self, resource_id: str, region: str, timeout: float = DEFAULT_TIMEOUT) -> None:
        self._simulate("delete", resource_id, timeout)
        with self._lock:
            if resource_id not in self._records:
                raise NotFoundError(resource_id)
            holders = [r.id for r in self._records.values() if resource_id in r.dependencies]
            if holders:
                raise ResourceInUseError(resource_id, holders)
            del self._records[resource_id]
            self.calls.append(("delete", resource_id))
            self._persist()

    @property
    def mutation_count(self) -> int:
        return len(self.calls)

    def _simulate(self, action: str, resource_id: str, timeout: float) -> None:
        self._wait(action, resource_id, self.latency.get(resource_id, 0.0), timeout)
        failure = self.failures.get(resource_id)
        if failure is not None:
            raise failure

    @staticmethod
    def _wait(action: str, resource_id: str, delay: float, timeout: float) -> None:
        if delay > timeout:
            time.sleep(timeout)
            logger.debug("%s %s exceeded timeout of %ss", action, resource_id, timeout)
            raise OperationTimeoutError(resource_id, timeout)
        if delay:
            time.sleep(delay)

    def _outputs(self, resource: Resource, region: str) -> dict[str, str]:
        service = _SERVICE_PREFIX[resource.kind]
        outputs = {"arn": f"arn:aws:{service}:{region}:{self.account_id}:{resource.kind.value.lower()}/{resource.id}"}
        if resource.kind == ResourceKind.LOAD_BALANCER:
            digest = hashlib.sha1(f"{resource.id}:{region}".encode()).hexdigest()[:10]
            name = resource.attributes.get("name", resource.id)
            outputs["dns_name"] = f"{name}-{digest}.{region}.elb.amazonaws.com"
        elif resource.kind == ResourceKind.REGISTRY:
            name = resource.attributes.get("name", resource.id)
            outputs["repository_url"] = f"{self.account_id}.dkr.ecr.{region}.amazonaws.com/{name}"
        return outputs

    def _persist(self) -> None:
        """Hook for subclasses that store state elsewhere. Called with the lock held."""
