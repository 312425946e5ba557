"""Persisted per-version state (priority, purpose)."""

import json
from pathlib import Path
from typing import Optional
import logging

from fwupdater.models.state import PersistedVersionState
from fwupdater.models.status import VersionPurpose


class StateManager:
    """Flat key/value sidecar, one JSON file per version id.

    Layout:
        <persist_dir>/<version_id>.json  {"priority": 0, "purpose": "BMC"}
    """

    def __init__(self, persist_dir: str = "/var/lib/phosphor-bmc-code-mgmt"):
        """Initialize state manager.

        Args:
            persist_dir: Directory holding the per-version files
        """
        self.logger = logging.getLogger("fwupdater.state_manager")
        self.persist_dir = Path(persist_dir)
        self.logger.info(f"StateManager initialized with persist_dir={persist_dir}")

    def _state_path(self, version_id: str) -> Path:
        return self.persist_dir / f"{version_id}.json"

    def load_state(self, version_id: str) -> Optional[PersistedVersionState]:
        """Load the persisted record of a version.

        Returns:
            PersistedVersionState if exists and valid, None otherwise
        """
        state_path = self._state_path(version_id)
        if not state_path.exists():
            self.logger.debug(f"No state file for {version_id}")
            return None

        try:
            with open(state_path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return PersistedVersionState(**data)
        except Exception as e:
            self.logger.error(f"Failed to load state file {state_path}: {e}", exc_info=True)
            # Corrupted record, drop it so the next store starts clean
            state_path.unlink(missing_ok=True)
            return None

    def save_state(self, version_id: str, state: PersistedVersionState) -> None:
        """Write the record of a version atomically (temp file + rename)."""
        state_path = self._state_path(version_id)
        tmp_path = state_path.with_suffix(".json.tmp")
        try:
            self.persist_dir.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(state.model_dump(mode="json"), f, indent=2)
            tmp_path.replace(state_path)
            self.logger.debug(f"Saved state for {version_id}: {state.model_dump(mode='json')}")
        except Exception as e:
            tmp_path.unlink(missing_ok=True)
            self.logger.error(f"Failed to save state file {state_path}: {e}", exc_info=True)
            raise

    def store_priority(self, version_id: str, priority: int) -> None:
        state = self.load_state(version_id) or PersistedVersionState()
        state.priority = priority
        self.save_state(version_id, state)

    def restore_priority(self, version_id: str) -> Optional[int]:
        state = self.load_state(version_id)
        if state is None:
            return None
        return state.priority

    def store_purpose(self, version_id: str, purpose: VersionPurpose) -> None:
        state = self.load_state(version_id) or PersistedVersionState()
        state.purpose = purpose
        self.save_state(version_id, state)

    def restore_purpose(self, version_id: str) -> Optional[VersionPurpose]:
        state = self.load_state(version_id)
        if state is None:
            return None
        return state.purpose

    def remove_persist_data(self, version_id: str) -> None:
        """Delete the record of a version (no-op if absent)."""
        state_path = self._state_path(version_id)
        if state_path.exists():
            state_path.unlink()
            self.logger.info(f"Deleted persisted data for {version_id}")
