"""Entry-point plugins: third-party providers and network policy sets."""

from __future__ import annotations

import logging
from collections.abc import Callable
from importlib.metadata import entry_points
from typing import Any

logger = logging.getLogger(__name__)

PROVIDER_GROUP = "stackwright.providers"
POLICY_GROUP = "stackwright.policies"

ALL_GROUPS = [PROVIDER_GROUP, POLICY_GROUP]


def _is_provider(obj: Any) -> bool:
    from stackwright.providers import Provider

    return isinstance(obj, type) and issubclass(obj, Provider)


_CHECKS: dict[str, tuple[Callable[[Any], bool], str]] = {
    PROVIDER_GROUP: (_is_provider, "a Provider subclass"),
    POLICY_GROUP: (callable, "callable"),
}


def discover_plugins(group: str | None = None) -> dict[str, dict[str, Any]]:
    """Load every entry point in the given group, or in all stackwright groups.

    Entry points that fail to import or do not have the expected shape are
    logged and left out.
    """
    result: dict[str, dict[str, Any]] = {}
    for g in [group] if group else ALL_GROUPS:
        result[g] = {}
        check, expected = _CHECKS.get(g, (lambda obj: True, ""))
        try:
            eps = entry_points(group=g)
        except Exception as exc:
            logger.warning("Failed to scan entry point group %s: %s", g, exc)
            continue
        for ep in eps:
            try:
                loaded = ep.load()
            except Exception as exc:
                logger.warning("Failed to load plugin %s from %s: %s", ep.name, g, exc)
                continue
            if not check(loaded):
                logger.warning("Ignoring plugin %s from %s: not %s", ep.name, g, expected)
                continue
            result[g][ep.name] = loaded
            logger.debug("Loaded plugin %s from group %s", ep.name, g)
    return result


def discover_providers() -> dict[str, Any]:
    """{name: Provider subclass}"""
    return discover_plugins(PROVIDER_GROUP)[PROVIDER_GROUP]


def discover_policies() -> dict[str, Any]:
    """{name: callable(ResourceModel) -> list[TierPolicy]}"""
    return discover_plugins(POLICY_GROUP)[POLICY_GROUP]
