"""Tests for planning and applying against the in-memory provider."""

from __future__ import annotations

import time

import pytest
from stackwright.errors import (
    CyclicDependencyError,
    NetworkPolicyViolationError,
    NotFoundError,
    OperationTimeoutError,
    RemoteOperationError,
    ResourceInUseError,
    RoutingMismatchError,
)
from stackwright.graph import DependencyGraph
from stackwright.model import ResourceModel
from stackwright.providers import DEFAULT_TIMEOUT
from stackwright.providers.memory import InMemoryProvider
from stackwright.reconciler import Action, Reconciler
from stackwright.spec import Resource, ResourceKind, StackConfig
from stackwright.templates import build_model, build_resources


def _replace(resources: list[Resource], rid: str, **attrs) -> list[Resource]:
    out = []
    for r in resources:
        if r.id == rid:
            r = r.model_copy(update={"attributes": {**r.attributes, **attrs}})
        out.append(r)
    return out


def _mutations(provider: InMemoryProvider, action: str) -> list[str]:
    return [rid for a, rid in provider.calls if a == action]


class _IgnoresTimeout(InMemoryProvider):
    """Blocks on one resource for a fixed time whatever timeout it is given."""

    def __init__(self, stuck: str, delay: float):
        super().__init__()
        self.stuck = stuck
        self.delay = delay

    def create(self, resource, dependencies, region, timeout=DEFAULT_TIMEOUT):
        if resource.id == self.stuck:
            time.sleep(self.delay)
        return super().create(resource, dependencies, region, timeout)


class TestPlan:
    def test_fresh_plan_creates_everything_in_order(self, reconciler, model):
        plan = reconciler.plan(DependencyGraph.build(model))
        assert [op.resource_id for op in plan.operations] == model.ids()
        assert all(op.action == Action.CREATE for op in plan.operations)
        assert [op.position for op in plan.operations] == list(range(15))
        assert plan.summary() == "Plan: 15 to create, 0 to update, 0 to destroy."

    def test_plan_makes_no_remote_changes(self, reconciler, provider, model):
        reconciler.plan(DependencyGraph.build(model))
        assert provider.calls == []

    def test_operation_depends_on_its_references(self, reconciler, model):
        plan = reconciler.plan(DependencyGraph.build(model))
        deps = plan.dependencies
        assert set(deps["service"]) == {
            "listener",
            "cluster",
            "task_definition",
            "subnet_a",
            "subnet_b",
            "subnet_c",
            "service_security_group",
            "target_group",
        }
        assert deps["vpc"] == []

    def test_ready_releases_operations_after_dependencies(self, reconciler, model):
        plan = reconciler.plan(DependencyGraph.build(model))
        first = {op.resource_id for op in plan.ready(set())}
        assert first == {"registry", "cluster", "execution_role", "vpc"}
        after_vpc = {op.resource_id for op in plan.ready({"vpc"}, started={"registry", "cluster", "execution_role"})}
        assert after_vpc == {"subnet_a", "subnet_b", "subnet_c", "lb_security_group", "target_group"}


class TestApply:
    def test_apply_creates_everything(self, reconciler, provider, model):
        result = reconciler.reconcile(model)
        assert result.succeeded
        assert result.completed == model.ids()
        assert _mutations(provider, "create") == model.ids()
        assert len(provider.list()) == 15

    def test_second_apply_is_a_no_op(self, reconciler, provider, model):
        reconciler.reconcile(model)
        count = provider.mutation_count

        plan = reconciler.plan(DependencyGraph.build(model))
        assert plan.is_empty
        assert plan.summary() == "No changes. Remote state matches the declared stack."
        result = reconciler.apply(plan)
        assert result.succeeded
        assert provider.mutation_count == count

    def test_changed_attribute_becomes_update(self, reconciler, provider, config):
        reconciler.reconcile(build_model(config))
        changed = build_model(config.model_copy(update={"desired_count": 3}))

        plan = reconciler.plan(DependencyGraph.build(changed))
        assert [(op.action, op.resource_id) for op in plan.operations] == [(Action.UPDATE, "service")]
        change = plan.operations[0].changes[0]
        assert (change.field, change.old_value, change.new_value) == ("desired_count", "1", "3")

        reconciler.apply(plan)
        assert provider.read("service").attributes["desired_count"] == 3

    def test_new_image_updates_only_the_task_definition(self, reconciler, config):
        reconciler.reconcile(build_model(config))
        changed = build_model(config.model_copy(update={"image": "webapp:2.0"}))
        plan = reconciler.plan(DependencyGraph.build(changed))
        assert [op.resource_id for op in plan.operations] == ["task_definition"]

    def test_outputs_expose_dns_name(self, reconciler, model):
        assert reconciler.outputs() == {}
        reconciler.reconcile(model)
        outputs = reconciler.outputs()
        assert outputs["load_balancer"] == "load_balancer"
        assert outputs["dns_name"].startswith("webapp-lb-")
        assert outputs["dns_name"].endswith(".us-east-1.elb.amazonaws.com")

    def test_region_is_explicit_per_reconciler(self, model):
        east = Reconciler(InMemoryProvider(), region="us-east-1")
        west = Reconciler(InMemoryProvider(), region="eu-west-1")
        east.reconcile(model)
        west.reconcile(model)
        assert "us-east-1" in east.outputs()["dns_name"]
        assert "eu-west-1" in west.outputs()["dns_name"]
        assert ":eu-west-1:" in west.provider.read("cluster").outputs["arn"]

    def test_in_place_edit_after_apply_is_planned(self, reconciler, provider, model):
        reconciler.reconcile(model)
        model.get_resource("service").attributes["load_balancer"]["container_port"] = 8080

        plan = reconciler.plan(DependencyGraph.build(model))
        assert [(op.action, op.resource_id) for op in plan.operations] == [(Action.UPDATE, "service")]
        assert provider.read("service").attributes["load_balancer"]["container_port"] == 3000


class TestFailure:
    def test_halts_at_first_failure(self, model):
        provider = InMemoryProvider(failures={"load_balancer": RuntimeError("quota exceeded")})
        reconciler = Reconciler(provider, region="us-east-1")
        result = reconciler.reconcile(model)

        ids = model.ids()
        assert not result.succeeded
        assert result.completed == ids[:10]
        assert result.failed.resource_id == "load_balancer"
        assert result.failed.position == 10
        assert result.failed.action == "create"
        assert "quota exceeded" in str(result.failed)
        assert result.pending == ids[11:]
        # Nothing is rolled back
        assert [r.id for r in provider.list()] == ids[:10]

    def test_rerun_resumes_after_failure(self, model):
        provider = InMemoryProvider(failures={"load_balancer": RuntimeError("quota exceeded")})
        reconciler = Reconciler(provider, region="us-east-1")
        reconciler.reconcile(model)

        provider.failures.clear()
        plan = reconciler.plan(DependencyGraph.build(model))
        assert [op.resource_id for op in plan.operations] == [
            "load_balancer",
            "target_group",
            "listener",
            "service_security_group",
            "service",
        ]
        assert reconciler.apply(plan).succeeded
        assert len(provider.list()) == 15

    def test_raise_on_error(self, model):
        provider = InMemoryProvider(failures={"vpc": RuntimeError("boom")})
        reconciler = Reconciler(provider, region="us-east-1")
        plan = reconciler.plan(DependencyGraph.build(model))
        with pytest.raises(RemoteOperationError) as exc:
            reconciler.apply(plan, raise_on_error=True)
        assert exc.value.resource_id == "vpc"
        assert isinstance(exc.value.cause, RuntimeError)

    def test_timeout_marks_resource_unknown(self, model):
        provider = InMemoryProvider(latency={"cluster": 0.05})
        reconciler = Reconciler(provider, region="us-east-1", timeout=0.01)
        result = reconciler.reconcile(model)

        assert result.failed.resource_id == "cluster"
        assert result.failed.timed_out
        assert result.unknown == ["cluster"]
        assert "cluster" in reconciler.unknown
        assert result.completed == ["registry"]

    def test_unknown_resource_is_reread_on_next_plan(self, model):
        provider = InMemoryProvider(latency={"cluster": 0.05})
        reconciler = Reconciler(provider, region="us-east-1", timeout=0.01)
        reconciler.reconcile(model)

        provider.latency.clear()
        plan = reconciler.plan(DependencyGraph.build(model))
        assert "cluster" not in reconciler.unknown
        assert plan.operations[0].resource_id == "cluster"
        assert plan.operations[0].action == Action.CREATE

    def test_slow_read_times_out_plan(self, model):
        provider = InMemoryProvider(read_latency={"vpc": 1.0})
        reconciler = Reconciler(provider, region="us-east-1", timeout=0.01)
        with pytest.raises(OperationTimeoutError) as exc:
            reconciler.plan(DependencyGraph.build(model))
        assert exc.value.resource_id == "vpc"

    def test_slow_listing_times_out_outputs(self):
        reconciler = Reconciler(InMemoryProvider(read_latency={"*": 1.0}), region="us-east-1", timeout=0.01)
        with pytest.raises(OperationTimeoutError):
            reconciler.outputs()


class TestConcurrentApply:
    def test_dependencies_complete_before_dependents(self, model):
        provider = InMemoryProvider(latency={"subnet_a": 0.02, "execution_role": 0.01})
        reconciler = Reconciler(provider, region="us-east-1")
        graph = DependencyGraph.build(model)
        result = reconciler.apply_concurrent(reconciler.plan(graph), max_workers=4)

        assert result.succeeded
        assert sorted(result.completed) == sorted(model.ids())
        created = _mutations(provider, "create")
        index = {rid: i for i, rid in enumerate(created)}
        for edge in graph.edges:
            assert index[edge.source] < index[edge.target], edge

    def test_no_new_work_after_failure(self, model):
        provider = InMemoryProvider(failures={"vpc": RuntimeError("boom")})
        reconciler = Reconciler(provider, region="us-east-1")
        result = reconciler.reconcile(model, concurrent=True, max_workers=4)

        assert result.failed.resource_id == "vpc"
        for rid in ("subnet_a", "load_balancer", "service"):
            assert rid not in result.completed
            assert provider.read(rid) is None

    def test_concurrent_rerun_is_a_no_op(self, reconciler, provider, model):
        reconciler.reconcile(model, concurrent=True)
        count = provider.mutation_count
        result = reconciler.reconcile(model, concurrent=True)
        assert result.succeeded
        assert result.completed == []
        assert provider.mutation_count == count

    def test_call_ignoring_timeout_is_abandoned(self, model):
        provider = _IgnoresTimeout("vpc", delay=1.0)
        reconciler = Reconciler(provider, region="us-east-1", timeout=0.05)
        plan = reconciler.plan(DependencyGraph.build(model))

        started = time.monotonic()
        result = reconciler.apply_concurrent(plan, max_workers=4)
        assert time.monotonic() - started < 0.8
        assert result.failed.resource_id == "vpc"
        assert result.failed.timed_out
        assert "vpc" in result.unknown
        assert "subnet_a" not in result.completed


class TestDestroy:
    def test_removed_resources_destroyed_newest_first(self, reconciler, provider, resources):
        legacy = [
            Resource(id="legacy_role", kind=ResourceKind.ROLE, attributes={"name": "legacy"}),
            Resource(
                id="legacy_policy",
                kind=ResourceKind.POLICY_ATTACHMENT,
                attributes={"role": "legacy_role", "policy_arn": "arn:aws:iam::aws:policy/ReadOnlyAccess"},
            ),
        ]
        reconciler.reconcile(ResourceModel(resources + legacy))

        plan = reconciler.plan(DependencyGraph.build(ResourceModel(resources)))
        assert [(op.action, op.resource_id) for op in plan.operations] == [
            (Action.DESTROY, "legacy_policy"),
            (Action.DESTROY, "legacy_role"),
        ]
        reconciler.apply(plan)
        assert _mutations(provider, "delete") == ["legacy_policy", "legacy_role"]

    def test_holder_updated_before_removed_group_destroyed(self, reconciler, resources):
        legacy_sg = Resource(id="legacy_sg", kind=ResourceKind.SECURITY_GROUP, attributes={"vpc": "vpc"})
        with_legacy = _replace(resources, "service", security_groups=["service_security_group", "legacy_sg"])
        graph = DependencyGraph.build(ResourceModel(with_legacy + [legacy_sg]))
        reconciler.apply(reconciler.plan(graph))

        plan = reconciler.plan(DependencyGraph.build(ResourceModel(resources)))
        actions = {op.resource_id: op for op in plan.operations}
        assert actions["service"].action == Action.UPDATE
        assert actions["legacy_sg"].action == Action.DESTROY
        assert actions["service"].position < actions["legacy_sg"].position
        assert reconciler.apply(plan).succeeded

    def test_destroy_referenced_group_rejected_before_remote_calls(self, reconciler, provider, model):
        reconciler.reconcile(model)
        count = provider.mutation_count
        with pytest.raises(ResourceInUseError) as exc:
            reconciler.plan_destroy(DependencyGraph.build(model), ["lb_security_group"])
        assert set(exc.value.dependents) == {"load_balancer", "service_security_group"}
        assert provider.mutation_count == count

    def test_destroy_unknown_resource(self, reconciler, model):
        with pytest.raises(NotFoundError):
            reconciler.plan_destroy(DependencyGraph.build(model), ["nope"])

    def test_destroy_leaf_resource(self, reconciler, provider, model):
        reconciler.reconcile(model)
        plan = reconciler.plan_destroy(DependencyGraph.build(model), ["service"])
        assert [op.resource_id for op in plan.operations] == ["service"]
        assert reconciler.apply(plan).succeeded
        assert provider.read("service") is None

    def test_full_teardown_in_reverse_creation_order(self, reconciler, provider, model):
        reconciler.reconcile(model)
        plan = reconciler.plan_destroy(DependencyGraph.build(model))
        assert plan.count(Action.DESTROY) == 15

        result = reconciler.apply(plan)
        assert result.succeeded
        assert provider.list() == []
        assert _mutations(provider, "delete") == list(reversed(model.ids()))

    def test_teardown_of_empty_provider(self, reconciler, model):
        assert reconciler.plan_destroy(DependencyGraph.build(model)).is_empty

    def test_teardown_follows_remote_dependencies(self, reconciler, provider):
        a = Resource(id="a", kind=ResourceKind.CLUSTER)
        b = Resource(id="b", kind=ResourceKind.CLUSTER, references=["a"])
        reconciler.apply(reconciler.plan(DependencyGraph.build(ResourceModel([a]))))
        reconciler.apply(reconciler.plan(DependencyGraph.build(ResourceModel([a, b]))))

        # Declared references now point the other way round
        redeclared = ResourceModel([a.model_copy(update={"references": ["b"]}), b.model_copy(update={"references": []})])
        plan = reconciler.plan_destroy(DependencyGraph.build(redeclared))
        assert [op.resource_id for op in plan.operations] == ["b", "a"]
        assert reconciler.apply(plan).succeeded
        assert provider.list() == []

    def test_mutually_held_resources_are_rejected(self, reconciler, provider):
        provider.create(Resource(id="a", kind=ResourceKind.CLUSTER), ["b"], "us-east-1")
        provider.create(Resource(id="b", kind=ResourceKind.CLUSTER), ["a"], "us-east-1")
        with pytest.raises(CyclicDependencyError) as exc:
            reconciler.plan_destroy(DependencyGraph.build(ResourceModel()))
        assert set(exc.value.cycle) == {"a", "b"}
        assert _mutations(provider, "delete") == []


class TestValidation:
    def test_open_service_group_rejected_before_remote_calls(self, reconciler, provider, resources):
        opened = _replace(
            resources,
            "service_security_group",
            ingress=[{"from_port": 3000, "to_port": 3000, "cidr_blocks": ["0.0.0.0/0"]}],
        )
        with pytest.raises(NetworkPolicyViolationError):
            reconciler.reconcile(ResourceModel(opened))
        assert provider.calls == []

    def test_routing_mismatch_rejected_before_remote_calls(self, reconciler, provider, resources):
        other_tg = Resource(
            id="other_tg", kind=ResourceKind.TARGET_GROUP, attributes={"vpc": "vpc", "health_check": {"path": "/"}}
        )
        rewired = _replace(resources, "listener", default_target_group="other_tg")
        with pytest.raises(RoutingMismatchError):
            reconciler.reconcile(ResourceModel(rewired + [other_tg]))
        assert provider.calls == []

    def test_validate_returns_wiring(self, reconciler, model):
        (wiring,) = reconciler.validate(model)
        assert wiring.listener_port == 80
        assert wiring.container_port == 3000
        assert wiring.target_group_id == "target_group"

    def test_custom_ports_flow_through(self):
        model = ResourceModel(build_resources(StackConfig(listener_port=8080, container_port=8000)))
        (wiring,) = Reconciler(InMemoryProvider(), region="us-east-1").validate(model)
        assert (wiring.listener_port, wiring.container_port) == (8080, 8000)
