"""Network policy validation over the security-group reference chain."""

from __future__ import annotations

import logging

from stackwright.errors import DanglingSecurityGroupReferenceError, NetworkPolicyViolationError
from stackwright.model import ResourceModel
from stackwright.spec import Resource, ResourceKind, TierPolicy

logger = logging.getLogger(__name__)


def default_policies(model: ResourceModel) -> list[TierPolicy]:
    """Two-tier policy derived from the stack: only the load balancer reaches the service tier.

    Groups attached to a load balancer may accept open CIDR ingress. Groups
    attached to a service accept ingress only from the load balancer's groups.
    """
    edge_groups: list[str] = []
    for lb in model.of_kind(ResourceKind.LOAD_BALANCER):
        edge_groups.extend(g for g in lb.attributes.get("security_groups", []) if g not in edge_groups)

    policies = [TierPolicy(group=g, allow_cidr=True, description="internet-facing edge") for g in edge_groups]
    for svc in model.of_kind(ResourceKind.SERVICE):
        for g in svc.attributes.get("security_groups", []):
            if g in edge_groups or any(p.group == g for p in policies):
                continue
            policies.append(
                TierPolicy(group=g, allowed_sources=list(edge_groups), description=f"service tier of {svc.id}")
            )
    return policies


def tier_chain(groups: list[str]) -> list[TierPolicy]:
    """Policies for an n-tier chain: the first group is public, each next one trusts only its predecessor."""
    policies = []
    for i, g in enumerate(groups):
        if i == 0:
            policies.append(TierPolicy(group=g, allow_cidr=True))
        else:
            policies.append(TierPolicy(group=g, allowed_sources=[groups[i - 1]]))
    return policies


class NetworkPolicyValidator:
    """Checks that group references resolve and that ingress follows the tier policies."""

    def __init__(self, policies: list[TierPolicy] | None = None):
        self.policies = list(policies or [])

    def validate(self, security_groups: list[Resource]) -> None:
        groups = {g.id: g for g in security_groups if g.kind == ResourceKind.SECURITY_GROUP}

        # Dangling references are checked on every group before any policy runs
        for group in groups.values():
            for rule in group.rules():
                src = rule.source_security_group
                if src is not None and src not in groups:
                    raise DanglingSecurityGroupReferenceError(group.id, src, rule.direction)

        for policy in self.policies:
            group = groups.get(policy.group)
            if group is None:
                logger.debug("Policy for %s has no matching security group, skipping", policy.group)
                continue
            self._check_policy(group, policy)

    def validate_model(self, model: ResourceModel) -> None:
        self.validate(model.security_groups())

    @staticmethod
    def _check_policy(group: Resource, policy: TierPolicy) -> None:
        for rule in group.rules("ingress"):
            if rule.cidr_blocks and not policy.allow_cidr:
                raise NetworkPolicyViolationError(
                    group.id,
                    f"ingress from {', '.join(rule.cidr_blocks)} on port {rule.from_port}; "
                    f"only {', '.join(policy.allowed_sources) or 'no sources'} may reach this tier",
                )
            src = rule.source_security_group
            if src is not None and src != group.id and src not in policy.allowed_sources:
                raise NetworkPolicyViolationError(group.id, f"ingress from group {src!r} is not an allowed source")
