"""Shared fixtures for stackwright tests."""

from __future__ import annotations

import pytest
from stackwright.model import ResourceModel
from stackwright.providers.memory import InMemoryProvider
from stackwright.reconciler import Reconciler
from stackwright.spec import Resource, StackConfig
from stackwright.templates import build_resources


@pytest.fixture
def config() -> StackConfig:
    return StackConfig(name="webapp", region="us-east-1", image="webapp:1.0")


@pytest.fixture
def resources(config) -> list[Resource]:
    """The full web-service stack: 15 resources in declaration order."""
    return build_resources(config)


@pytest.fixture
def model(resources) -> ResourceModel:
    return ResourceModel(resources)


@pytest.fixture
def provider() -> InMemoryProvider:
    return InMemoryProvider()


@pytest.fixture
def reconciler(provider) -> Reconciler:
    return Reconciler(provider, region="us-east-1", timeout=5.0)
