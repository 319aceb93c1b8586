"""Tests for drift detection."""

from __future__ import annotations

from stackwright.drift import detect_drift
from stackwright.model import ResourceModel
from stackwright.templates import build_model


class TestDrift:
    def test_nothing_deployed(self, model, provider):
        report = detect_drift(model, provider)
        assert report.has_drift
        assert report.missing_resources == model.ids()
        assert report.drift_score == 1.0

    def test_in_sync_after_apply(self, model, provider, reconciler):
        reconciler.reconcile(model)
        report = detect_drift(model, provider)
        assert not report.has_drift
        assert report.drift_score == 0.0
        assert report.summary.startswith("No drift detected")

    def test_attribute_drift(self, config, provider, reconciler):
        reconciler.reconcile(build_model(config))
        report = detect_drift(build_model(config.model_copy(update={"cpu": 512})), provider)
        assert report.drifted_resources == ["task_definition"]
        assert report.changes[0].field == "cpu"
        assert "task_definition.cpu: 256 -> 512" in report.summary

    def test_extra_resources(self, resources, provider, reconciler):
        reconciler.reconcile(ResourceModel(resources))
        smaller = ResourceModel([r for r in resources if r.id != "registry"])
        # task_definition references the registry, drop that reference too
        smaller = ResourceModel(
            [
                r.model_copy(update={"references": ["execution_role_policy"]}) if r.id == "task_definition" else r
                for r in smaller
            ]
        )
        report = detect_drift(smaller, provider)
        assert report.extra_resources == ["registry"]
        assert "task_definition" in report.drifted_resources
