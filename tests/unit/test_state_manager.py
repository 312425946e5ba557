"""Unit tests for StateManager."""

import json
import pytest

from fwupdater.models.state import PersistedVersionState
from fwupdater.models.status import VersionPurpose
from fwupdater.services.state_manager import StateManager


@pytest.mark.unit
class TestStateManager:
    """Test StateManager in isolation."""

    @pytest.fixture
    def manager(self, tmp_path):
        return StateManager(persist_dir=str(tmp_path / "persist"))

    def test_restore_missing_returns_none(self, manager):
        assert manager.restore_priority("1a2b3c4d") is None
        assert manager.restore_purpose("1a2b3c4d") is None

    def test_store_and_restore_priority(self, manager, tmp_path):
        manager.store_priority("1a2b3c4d", 3)

        assert manager.restore_priority("1a2b3c4d") == 3
        data = json.loads((tmp_path / "persist" / "1a2b3c4d.json").read_text())
        assert data["priority"] == 3

    def test_priority_and_purpose_share_one_record(self, manager):
        manager.store_priority("1a2b3c4d", 1)
        manager.store_purpose("1a2b3c4d", VersionPurpose.SYSTEM)

        assert manager.restore_priority("1a2b3c4d") == 1
        assert manager.restore_purpose("1a2b3c4d") == VersionPurpose.SYSTEM

    def test_overwrite_priority(self, manager):
        manager.store_priority("1a2b3c4d", 0)
        manager.store_priority("1a2b3c4d", 255)

        assert manager.restore_priority("1a2b3c4d") == 255

    def test_save_is_atomic(self, manager, tmp_path):
        """No temp file is left behind after a save."""
        manager.save_state("1a2b3c4d", PersistedVersionState(priority=2))

        assert not (tmp_path / "persist" / "1a2b3c4d.json.tmp").exists()
        assert (tmp_path / "persist" / "1a2b3c4d.json").exists()

    def test_out_of_range_priority_rejected(self, manager):
        with pytest.raises(ValueError):
            manager.store_priority("1a2b3c4d", 256)

    def test_corrupted_record_is_dropped(self, manager, tmp_path):
        persist = tmp_path / "persist"
        persist.mkdir(parents=True)
        record = persist / "1a2b3c4d.json"
        record.write_text("{not json")

        assert manager.restore_priority("1a2b3c4d") is None
        assert not record.exists()

    def test_invalid_purpose_is_dropped(self, manager, tmp_path):
        persist = tmp_path / "persist"
        persist.mkdir(parents=True)
        record = persist / "1a2b3c4d.json"
        record.write_text(json.dumps({"priority": 1, "purpose": "Toaster"}))

        assert manager.load_state("1a2b3c4d") is None
        assert not record.exists()

    def test_remove_persist_data(self, manager, tmp_path):
        manager.store_priority("1a2b3c4d", 1)

        manager.remove_persist_data("1a2b3c4d")

        assert not (tmp_path / "persist" / "1a2b3c4d.json").exists()
        assert manager.restore_priority("1a2b3c4d") is None

    def test_remove_missing_is_noop(self, manager):
        manager.remove_persist_data("deadbeef")
