"""Project directory support — finds and loads .stackwright/ configuration."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

PROJECT_DIR = ".stackwright"
DEFAULT_STATE_FILE = "stackwright.state.json"

_DEFAULTS: dict[str, Any] = {
    "provider": "local",
    "state_file": DEFAULT_STATE_FILE,
    "timeout": 30.0,
    "max_workers": 4,
}


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from start (default: cwd) looking for .stackwright/ directory."""
    current = (start or Path.cwd()).resolve()
    for parent in [current, *current.parents]:
        if (parent / PROJECT_DIR).is_dir():
            return parent
    return None


def load_project_config(project_root: Path | None) -> dict[str, Any]:
    """Project settings merged over defaults; STACKWRIGHT_STATE_FILE wins over both."""
    config = dict(_DEFAULTS)
    if project_root is not None:
        config_path = project_root / PROJECT_DIR / "config.yaml"
        if config_path.exists():
            config.update(yaml.safe_load(config_path.read_text()) or {})
        state = Path(config["state_file"])
        if not state.is_absolute():
            config["state_file"] = str(project_root / PROJECT_DIR / state)
    env_state = os.environ.get("STACKWRIGHT_STATE_FILE")
    if env_state:
        config["state_file"] = env_state
    return config


def get_project_stack_path(project_root: Path) -> Path | None:
    """Return the path to .stackwright/stack.yaml if it exists."""
    stack_path = project_root / PROJECT_DIR / "stack.yaml"
    if stack_path.exists():
        return stack_path
    return None


def resolve_stack_path(stack_file: str | None) -> Path:
    """Resolve a stack file path — if None, try project directory."""
    if stack_file:
        return Path(stack_file)

    root = find_project_root()
    if root:
        stack_path = get_project_stack_path(root)
        if stack_path:
            return stack_path

    raise FileNotFoundError(
        "No stack file specified and no .stackwright/stack.yaml found. "
        "Pass a stack file or run 'stackwright init --project' to create a project."
    )
