"""Tests for .stackwright/ project directory support."""

from __future__ import annotations

import pytest
import yaml
from stackwright_cli.project import (
    PROJECT_DIR,
    find_project_root,
    get_project_stack_path,
    load_project_config,
    resolve_stack_path,
)


@pytest.fixture
def project(tmp_path, monkeypatch):
    monkeypatch.delenv("STACKWRIGHT_STATE_FILE", raising=False)
    (tmp_path / PROJECT_DIR).mkdir()
    return tmp_path


class TestProjectRoot:
    def test_found_from_subdirectory(self, project):
        nested = project / "a" / "b"
        nested.mkdir(parents=True)
        assert find_project_root(nested) == project.resolve()

    def test_not_found(self, tmp_path):
        assert find_project_root(tmp_path) is None

    def test_stack_path(self, project):
        assert get_project_stack_path(project) is None
        (project / PROJECT_DIR / "stack.yaml").write_text("name: x\n")
        assert get_project_stack_path(project) == project / PROJECT_DIR / "stack.yaml"

    def test_resolve_without_project(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(FileNotFoundError, match="stackwright init --project"):
            resolve_stack_path(None)


class TestProjectConfig:
    def test_defaults(self):
        config = load_project_config(None)
        assert config["provider"] == "local"
        assert config["timeout"] == 30.0

    def test_relative_state_file_lives_in_project_dir(self, project):
        (project / PROJECT_DIR / "config.yaml").write_text(yaml.dump({"state_file": "state.json", "timeout": 5}))
        config = load_project_config(project)
        assert config["state_file"] == str(project / PROJECT_DIR / "state.json")
        assert config["timeout"] == 5

    def test_environment_overrides_state_file(self, project, monkeypatch):
        monkeypatch.setenv("STACKWRIGHT_STATE_FILE", "/tmp/elsewhere.json")
        assert load_project_config(project)["state_file"] == "/tmp/elsewhere.json"
