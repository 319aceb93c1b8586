"""The declared resource set for one load-balanced container service."""

from __future__ import annotations

from stackwright.model import ResourceModel
from stackwright.spec import Resource, ResourceKind, StackConfig, StackSpec

EXECUTION_ROLE_POLICY = "arn:aws:iam::aws:policy/service-role/AmazonECSTaskExecutionRolePolicy"

_ALL_TRAFFIC = {"from_port": 0, "to_port": 0, "protocol": "-1"}
_ANYWHERE = ["0.0.0.0/0"]


def _trust_policy(service: str) -> dict:
    return {
        "Version": "2012-10-17",
        "Statement": [
            {
                "Effect": "Allow",
                "Principal": {"Service": service},
                "Action": "sts:AssumeRole",
            }
        ],
    }


def build_resources(config: StackConfig) -> list[Resource]:
    """Resources in declaration order. IDs are fixed; names carry the stack name."""
    name = config.name
    subnets = [f"subnet_{az}" for az in config.availability_zones]

    resources = [
        Resource(
            id="registry",
            kind=ResourceKind.REGISTRY,
            attributes={"name": f"{name}-repo", "image_tag_mutability": "MUTABLE"},
        ),
        Resource(id="cluster", kind=ResourceKind.CLUSTER, attributes={"name": f"{name}-cluster"}),
        Resource(
            id="execution_role",
            kind=ResourceKind.ROLE,
            attributes={
                "name": f"{name}-execution-role",
                "assume_role_policy": _trust_policy("ecs-tasks.amazonaws.com"),
            },
        ),
        Resource(
            id="execution_role_policy",
            kind=ResourceKind.POLICY_ATTACHMENT,
            attributes={"role": "execution_role", "policy_arn": EXECUTION_ROLE_POLICY},
        ),
        Resource(
            id="task_definition",
            kind=ResourceKind.TASK_DEFINITION,
            attributes={
                "family": f"{name}-task",
                "container_name": name,
                "image": config.image,
                "cpu": config.cpu,
                "memory": config.memory,
                "container_port": config.container_port,
                "network_mode": "awsvpc",
                "requires_compatibilities": ["FARGATE"],
                "execution_role": "execution_role",
            },
            references=["registry", "execution_role_policy"],
        ),
        Resource(id="vpc", kind=ResourceKind.VPC, attributes={"default": True}),
    ]

    for az, subnet_id in zip(config.availability_zones, subnets):
        resources.append(
            Resource(
                id=subnet_id,
                kind=ResourceKind.SUBNET,
                attributes={"vpc": "vpc", "availability_zone": f"{config.region}{az}", "default_for_az": True},
            )
        )

    resources += [
        Resource(
            id="lb_security_group",
            kind=ResourceKind.SECURITY_GROUP,
            attributes={
                "name": f"{name}-lb-sg",
                "vpc": "vpc",
                "ingress": [
                    {
                        "from_port": config.listener_port,
                        "to_port": config.listener_port,
                        "protocol": "tcp",
                        "cidr_blocks": list(_ANYWHERE),
                    }
                ],
                "egress": [{**_ALL_TRAFFIC, "cidr_blocks": list(_ANYWHERE)}],
            },
        ),
        Resource(
            id="load_balancer",
            kind=ResourceKind.LOAD_BALANCER,
            attributes={
                "name": f"{name}-lb",
                "load_balancer_type": "application",
                "internal": False,
                "subnets": list(subnets),
                "security_groups": ["lb_security_group"],
            },
        ),
        Resource(
            id="target_group",
            kind=ResourceKind.TARGET_GROUP,
            attributes={
                "name": f"{name}-tg",
                "port": config.container_port,
                "protocol": "HTTP",
                "target_type": "ip",
                "vpc": "vpc",
                "health_check": {
                    "path": config.health_check_path,
                    "matcher": ",".join(str(c) for c in config.health_check_matcher),
                },
            },
        ),
        Resource(
            id="listener",
            kind=ResourceKind.LISTENER,
            attributes={
                "load_balancer": "load_balancer",
                "port": config.listener_port,
                "protocol": "HTTP",
                "default_target_group": "target_group",
            },
        ),
        Resource(
            id="service_security_group",
            kind=ResourceKind.SECURITY_GROUP,
            attributes={
                "name": f"{name}-service-sg",
                "vpc": "vpc",
                "ingress": [{**_ALL_TRAFFIC, "source_security_group": "lb_security_group"}],
                "egress": [{**_ALL_TRAFFIC, "cidr_blocks": list(_ANYWHERE)}],
            },
        ),
        Resource(
            id="service",
            kind=ResourceKind.SERVICE,
            attributes={
                "name": f"{name}-service",
                "cluster": "cluster",
                "task_definition": "task_definition",
                "launch_type": "FARGATE",
                "desired_count": config.desired_count,
                "subnets": list(subnets),
                "security_groups": ["service_security_group"],
                "assign_public_ip": True,
                "load_balancer": {
                    "target_group": "target_group",
                    "container_name": name,
                    "container_port": config.container_port,
                },
            },
            references=["listener"],
        ),
    ]
    return resources


def build_stack(config: StackConfig | None = None) -> StackSpec:
    config = config or StackConfig()
    return StackSpec(name=config.name, region=config.region, config=config, resources=build_resources(config))


def build_model(config: StackConfig | None = None) -> ResourceModel:
    return ResourceModel.from_spec(build_stack(config))
