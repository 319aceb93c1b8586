"""Topological reconciler — plans and applies create/update/destroy operations in dependency order.

Planning reads the provider, diffs every declared resource against what it
finds and orders the resulting operations over the dependency DAG. Applying
walks that order, sequentially or with a bounded worker pool, and stops at the
first failure. Nothing is rolled back: a later run re-plans from whatever
state the provider reports, which is safe because create and update are
idempotent.
"""

from __future__ import annotations

import heapq
import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from stackwright.differ import AttributeChange, ResourceRecord, diff_resource
from stackwright.errors import (
    CyclicDependencyError,
    NotFoundError,
    OperationTimeoutError,
    RemoteOperationError,
    ResourceInUseError,
)
from stackwright.graph import DependencyGraph
from stackwright.model import ResourceModel
from stackwright.network import NetworkPolicyValidator, default_policies
from stackwright.providers import DEFAULT_TIMEOUT, Provider
from stackwright.spec import Resource, ResourceKind, TierPolicy
from stackwright.wiring import ServiceWiring, ServiceWiringValidator

logger = logging.getLogger(__name__)

# Slack past the caller timeout before an in-flight call is given up on
DEADLINE_GRACE = 0.1


class Action(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DESTROY = "destroy"


class Operation(BaseModel):
    action: Action
    resource_id: str
    kind: str
    position: int = 0
    depends_on: list[str] = Field(default_factory=list)  # resource IDs of operations that must finish first
    changes: list[AttributeChange] = Field(default_factory=list)


@dataclass
class Plan:
    """An ordered list of operations that is also a DAG a concurrent executor can walk."""

    region: str
    operations: list[Operation] = field(default_factory=list)
    resources: dict[str, Resource] = field(default_factory=dict)
    references: dict[str, list[str]] = field(default_factory=dict)

    @property
    def dependencies(self) -> dict[str, list[str]]:
        return {op.resource_id: list(op.depends_on) for op in self.operations}

    @property
    def is_empty(self) -> bool:
        return not self.operations

    def count(self, action: Action) -> int:
        return sum(1 for op in self.operations if op.action == action)

    def ready(self, completed: set[str], started: set[str] | None = None) -> list[Operation]:
        """Operations not yet started whose dependencies have all completed."""
        started = started or set()
        return [
            op
            for op in self.operations
            if op.resource_id not in started
            and op.resource_id not in completed
            and all(dep in completed for dep in op.depends_on)
        ]

    def summary(self) -> str:
        if self.is_empty:
            return "No changes. Remote state matches the declared stack."
        return (
            f"Plan: {self.count(Action.CREATE)} to create, {self.count(Action.UPDATE)} to update, "
            f"{self.count(Action.DESTROY)} to destroy."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "region": self.region,
            "summary": self.summary(),
            "operations": [op.model_dump(mode="json") for op in self.operations],
        }


@dataclass
class ApplyResult:
    plan: Plan
    completed: list[str] = field(default_factory=list)
    errors: list[RemoteOperationError] = field(default_factory=list)
    unknown: list[str] = field(default_factory=list)

    @property
    def failed(self) -> RemoteOperationError | None:
        return self.errors[0] if self.errors else None

    @property
    def succeeded(self) -> bool:
        return not self.errors

    @property
    def pending(self) -> list[str]:
        failed_ids = {e.resource_id for e in self.errors}
        return [
            op.resource_id
            for op in self.plan.operations
            if op.resource_id not in self.completed and op.resource_id not in failed_ids
        ]

    def summary(self) -> str:
        total = len(self.plan.operations)
        if self.succeeded:
            return f"Apply complete: {len(self.completed)}/{total} operation(s) applied."
        err = self.failed
        return (
            f"Apply halted at step {err.position}: {err.action} {err.resource_id} failed. "
            f"{len(self.completed)}/{total} operation(s) applied, {len(self.pending)} not attempted."
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "succeeded": self.succeeded,
            "completed": self.completed,
            "pending": self.pending,
            "unknown": self.unknown,
            "errors": [
                {"resource_id": e.resource_id, "action": e.action, "position": e.position, "message": str(e.cause)}
                for e in self.errors
            ],
            "summary": self.summary(),
        }


class Reconciler:
    """Brings a provider into agreement with a declared resource set.

    The region and timeout are passed in rather than read from the
    environment so several reconcilers can run side by side against
    different simulated providers.
    """

    def __init__(
        self,
        provider: Provider,
        region: str,
        timeout: float = DEFAULT_TIMEOUT,
        policies: list[TierPolicy] | None = None,
    ):
        self.provider = provider
        self.region = region
        self.timeout = timeout
        self.policies = policies
        self.unknown: set[str] = set()

    # --- validation ---

    def validate(self, model: ResourceModel) -> list[ServiceWiring]:
        """Network and wiring invariants. Raises before any remote call on violation."""
        policies = self.policies if self.policies is not None else default_policies(model)
        NetworkPolicyValidator(policies).validate_model(model)
        return ServiceWiringValidator().validate_model(model)

    # --- planning ---

    def plan(self, graph: DependencyGraph) -> Plan:
        """Diff the declared graph against the provider and order the resulting operations."""
        model = graph.model
        topo = graph.topological_order()
        ops: dict[str, Operation] = {}
        plan = Plan(region=self.region)

        for rid in topo:
            resource = model.get_resource(rid)
            refs = graph.dependencies(rid)
            record = self.provider.read(rid, timeout=self.timeout)
            self.unknown.discard(rid)
            if record is None:
                ops[rid] = Operation(action=Action.CREATE, resource_id=rid, kind=resource.kind.value)
            else:
                changes = diff_resource(resource, record, refs)
                if not changes:
                    logger.debug("%s is up to date", rid)
                    continue
                ops[rid] = Operation(action=Action.UPDATE, resource_id=rid, kind=resource.kind.value, changes=changes)
            ops[rid].depends_on = [d for d in refs if d in ops]
            plan.resources[rid] = resource
            plan.references[rid] = refs

        records = self.provider.list(timeout=self.timeout)
        removed = [r for r in records if r.id not in model]
        for rec in removed:
            holders = [e.target for e in graph.dangling if e.source == rec.id]
            if holders:
                raise ResourceInUseError(rec.id, holders)
        self._add_destroys(ops, removed, records)

        plan.operations = _order(ops, topo, {r.id: r.sequence for r in records})
        logger.info("%s", plan.summary())
        return plan

    def plan_destroy(self, graph: DependencyGraph, resource_ids: list[str] | None = None) -> Plan:
        """Plan teardown of the given resources, or of everything the provider holds.

        Raises ResourceInUseError before any remote call when a resource that
        stays behind still references one being destroyed.
        """
        graph.check_acyclic()
        records = self.provider.list(timeout=self.timeout)
        by_id = {r.id: r for r in records}
        targets = list(resource_ids) if resource_ids is not None else [r.id for r in records]
        for rid in targets:
            if rid not in by_id and rid not in graph.model:
                raise NotFoundError(rid)
        target_set = set(targets)

        for rid in targets:
            holders = [d for d in graph.dependents(rid) if d in by_id and d not in target_set]
            holders += [r.id for r in records if rid in r.dependencies and r.id not in target_set]
            holders += [e.target for e in graph.dangling if e.source == rid and e.target not in target_set]
            if holders:
                raise ResourceInUseError(rid, list(dict.fromkeys(holders)))

        ops: dict[str, Operation] = {}
        self._add_destroys(ops, [by_id[rid] for rid in targets if rid in by_id], records)
        sequence = {r.id: r.sequence for r in records}
        plan = Plan(region=self.region, operations=_order(ops, graph.topological_order(), sequence))
        logger.info("%s", plan.summary())
        return plan

    @staticmethod
    def _add_destroys(ops: dict[str, Operation], doomed: list[ResourceRecord], records: list[ResourceRecord]) -> None:
        # Ordered by the dependencies the provider recorded
        doomed_ids = {r.id for r in doomed}
        for rec in doomed:
            # Whoever still holds this resource remotely must let go (update) or go first (destroy)
            holders = [r.id for r in records if rec.id in r.dependencies]
            depends_on = [h for h in dict.fromkeys(holders) if h in ops or h in doomed_ids]
            ops[rec.id] = Operation(action=Action.DESTROY, resource_id=rec.id, kind=rec.kind, depends_on=depends_on)

    # --- applying ---

    def apply(self, plan: Plan, raise_on_error: bool = False) -> ApplyResult:
        """Run the plan in order. Halts on the first failed operation."""
        result = ApplyResult(plan=plan)
        for op in plan.operations:
            try:
                self._execute(op, plan)
            except Exception as exc:
                error = self._failure(op, exc, result)
                if raise_on_error:
                    raise error from exc
                return result
            result.completed.append(op.resource_id)
        logger.info("%s", result.summary())
        return result

    def apply_concurrent(self, plan: Plan, max_workers: int = 4, raise_on_error: bool = False) -> ApplyResult:
        """Dispatch every operation whose dependencies have completed onto a worker pool.

        After a failure no new operation is started; operations already in
        flight run to completion and are reported. A call still running
        DEADLINE_GRACE seconds past the timeout is abandoned and reported as
        timed out, so a provider that ignores its timeout cannot block apply.
        """
        result = ApplyResult(plan=plan)
        done: set[str] = set()
        started: set[str] = set()
        in_flight: dict[Future, tuple[Operation, float]] = {}

        executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="reconciler")
        try:
            while True:
                if not result.errors:
                    # Never queue behind busy workers: the deadline starts at submission
                    for op in plan.ready(done, started)[: max_workers - len(in_flight)]:
                        started.add(op.resource_id)
                        deadline = time.monotonic() + self.timeout + DEADLINE_GRACE
                        in_flight[executor.submit(self._execute, op, plan)] = (op, deadline)
                if not in_flight:
                    break
                next_deadline = min(deadline for _, deadline in in_flight.values())
                finished, _ = wait(
                    in_flight, timeout=max(0.0, next_deadline - time.monotonic()), return_when=FIRST_COMPLETED
                )
                for future in finished:
                    op, _ = in_flight.pop(future)
                    exc = future.exception()
                    if exc is None:
                        done.add(op.resource_id)
                        result.completed.append(op.resource_id)
                    else:
                        self._failure(op, exc, result)

                now = time.monotonic()
                for future, (op, deadline) in list(in_flight.items()):
                    if deadline <= now and not future.done():
                        del in_flight[future]
                        self._failure(op, OperationTimeoutError(op.resource_id, self.timeout), result)
        finally:
            executor.shutdown(wait=False, cancel_futures=True)

        if result.errors and raise_on_error:
            raise result.failed from result.failed.cause
        if result.succeeded:
            logger.info("%s", result.summary())
        return result

    def reconcile(self, model: ResourceModel, concurrent: bool = False, max_workers: int = 4) -> ApplyResult:
        """Build, validate, plan and apply in one pass."""
        graph = DependencyGraph.build(model)
        self.validate(model)
        plan = self.plan(graph)
        if concurrent:
            return self.apply_concurrent(plan, max_workers=max_workers)
        return self.apply(plan)

    def outputs(self) -> dict[str, str]:
        """The stack's only consumed output: the load balancer's public DNS name."""
        for rec in self.provider.list(timeout=self.timeout):
            if rec.kind == ResourceKind.LOAD_BALANCER.value and "dns_name" in rec.outputs:
                return {"load_balancer": rec.id, "dns_name": rec.outputs["dns_name"]}
        return {}

    def _execute(self, op: Operation, plan: Plan) -> None:
        logger.info("%s %s (%s)", op.action.value, op.resource_id, op.kind)
        rid = op.resource_id
        if op.action == Action.CREATE:
            self.provider.create(plan.resources[rid], plan.references[rid], self.region, self.timeout)
        elif op.action == Action.UPDATE:
            self.provider.update(plan.resources[rid], plan.references[rid], self.region, self.timeout)
        else:
            self.provider.delete(op.resource_id, self.region, self.timeout)

    def _failure(self, op: Operation, exc: BaseException, result: ApplyResult) -> RemoteOperationError:
        error = RemoteOperationError(op.resource_id, op.action.value, op.position, exc)
        if isinstance(exc, OperationTimeoutError):
            self.unknown.add(op.resource_id)
            result.unknown.append(op.resource_id)
        result.errors.append(error)
        logger.warning("%s", error)
        return error


def _order(ops: dict[str, Operation], topo: list[str], sequence: dict[str, int]) -> list[Operation]:
    """Topological order over the plan DAG.

    Among ready operations destroys go first, newest resource first, then
    creates and updates in graph order with declaration order breaking ties.
    Operations left waiting on each other raise CyclicDependencyError.
    """
    rank = {rid: i for i, rid in enumerate(topo)}

    def key(rid: str) -> tuple[int, int]:
        op = ops[rid]
        if op.action == Action.DESTROY:
            return (0, -sequence.get(rid, 0))
        return (1, rank.get(rid, 0))

    dependents: dict[str, list[str]] = {rid: [] for rid in ops}
    remaining: dict[str, int] = {}
    for rid, op in ops.items():
        remaining[rid] = len(op.depends_on)
        for dep in op.depends_on:
            dependents[dep].append(rid)

    ready = [(key(rid), rid) for rid, n in remaining.items() if n == 0]
    heapq.heapify(ready)
    ordered: list[Operation] = []
    while ready:
        _, rid = heapq.heappop(ready)
        op = ops[rid]
        op.position = len(ordered)
        ordered.append(op)
        for succ in dependents[rid]:
            remaining[succ] -= 1
            if remaining[succ] == 0:
                heapq.heappush(ready, (key(succ), succ))
    if len(ordered) != len(ops):
        stuck = [rid for rid in ops if remaining[rid] > 0]
        raise CyclicDependencyError(stuck)
    return ordered
