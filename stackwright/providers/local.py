"""Local state provider — the in-memory control plane persisted to a JSON state file."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from stackwright.differ import ResourceRecord
from stackwright.providers.memory import InMemoryProvider

logger = logging.getLogger(__name__)

STATE_VERSION = 1


class LocalStateProvider(InMemoryProvider):
    """Keeps remote state in a JSON file so separate runs see each other's work."""

    name = "local"

    def __init__(self, state_file: str | Path = "stackwright.state.json", **kwargs):
        super().__init__(**kwargs)
        self.state_file = Path(state_file)
        self._load()

    def _load(self) -> None:
        if not self.state_file.exists():
            return
        data = json.loads(self.state_file.read_text())
        version = data.get("version", STATE_VERSION)
        if version != STATE_VERSION:
            raise ValueError(f"Unsupported state file version {version} in {self.state_file}")
        for raw in data.get("resources", []):
            record = ResourceRecord.model_validate(raw)
            self._records[record.id] = record
        self._sequence = data.get("sequence", len(self._records))
        logger.debug("Loaded %d resources from %s", len(self._records), self.state_file)

    def _persist(self) -> None:
        records = sorted(self._records.values(), key=lambda r: r.sequence)
        data = {
            "version": STATE_VERSION,
            "sequence": self._sequence,
            "resources": [r.model_dump() for r in records],
        }
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.state_file.with_suffix(self.state_file.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, default=str))
        tmp.replace(self.state_file)
