"""Unit tests for main.py lifespan startup and shutdown."""

import pytest
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch
from fastapi.testclient import TestClient

from fwupdater.models.version import get_id
from fwupdater.services.item_updater import ItemUpdater

from conftest import write_release


def _mock_updater():
    updater = MagicMock()
    updater.versions = {}
    updater.set_inventory_paths = AsyncMock()
    updater.restore_field_mode_status = AsyncMock()
    return updater


@pytest.mark.unit
class TestLifespan:

    def test_startup_and_shutdown(self, settings):
        from fwupdater.main import app

        updater = _mock_updater()
        with patch("fwupdater.main.load_settings", return_value=settings), \
                patch("fwupdater.main.setup_logger", return_value=MagicMock()) as mock_log, \
                patch("fwupdater.main.ItemUpdater", return_value=updater) as MockUpdater:
            with TestClient(app) as client:
                assert client.get("/").status_code == 200
                assert app.state.item_updater is updater
                updater.shutdown.assert_not_called()

        MockUpdater.assert_called_once_with(settings)
        mock_log.assert_called_once_with("fwupdater", settings.LOG_FILE, level=settings.LOG_LEVEL)
        updater.set_inventory_paths.assert_awaited_once()
        updater.restore_field_mode_status.assert_awaited_once()
        updater.process_all_images.assert_called_once()
        updater.shutdown.assert_called_once()

    def test_creates_directories(self, settings):
        from fwupdater.main import app

        with patch("fwupdater.main.load_settings", return_value=settings), \
                patch("fwupdater.main.setup_logger", return_value=MagicMock()), \
                patch("fwupdater.main.ItemUpdater", return_value=_mock_updater()):
            with TestClient(app):
                pass

        for directory in (settings.IMG_UPLOAD_DIR, settings.MEDIA_DIR, settings.PERSIST_DIR):
            assert Path(directory).is_dir()

    def test_startup_discovers_resident_images(
        self, settings, mock_process_manager, mock_inventory_client, add_bmc_mount
    ):
        """Resident BMC and host images are published once startup completes."""
        from fwupdater.main import app

        write_release(Path(settings.OS_RELEASE_FILE), "bmc-1.0")
        write_release(Path(settings.BIOS_RELEASE_FILE), "host-1.0")
        add_bmc_mount("bmc-1.0")

        def _build(s):
            return ItemUpdater(
                s, process_manager=mock_process_manager, inventory_client=mock_inventory_client
            )

        with patch("fwupdater.main.load_settings", return_value=settings), \
                patch("fwupdater.main.setup_logger", return_value=MagicMock()), \
                patch("fwupdater.main.ItemUpdater", side_effect=_build):
            with TestClient(app) as client:
                data = client.get("/api/v1.0/software").json()["data"]

        ids = {d["id"] for d in data}
        assert ids == {get_id("bmc-1.0"), get_id("host-1.0")}
        assert all(d["activation"] == "Active" for d in data)

    def test_field_mode_restored_at_startup(
        self, settings, mock_process_manager, mock_inventory_client
    ):
        from fwupdater.main import app

        env_file = Path(settings.BOOT_ENV_FILE)
        env_file.parent.mkdir(parents=True)
        env_file.write_text('{"fieldmode": "true"}')

        def _build(s):
            return ItemUpdater(
                s, process_manager=mock_process_manager, inventory_client=mock_inventory_client
            )

        with patch("fwupdater.main.load_settings", return_value=settings), \
                patch("fwupdater.main.setup_logger", return_value=MagicMock()), \
                patch("fwupdater.main.ItemUpdater", side_effect=_build):
            with TestClient(app) as client:
                body = client.get("/api/v1.0/field-mode").json()

        assert body["data"] == {"enabled": True}
        mock_process_manager.stop_unit.assert_awaited_once_with("usr-local.mount")
