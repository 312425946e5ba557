"""Global pytest fixtures and configuration."""

import sys
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from fwupdater.config import Settings  # noqa: E402
from fwupdater.models.version import get_id  # noqa: E402
from fwupdater.services.item_updater import ItemUpdater  # noqa: E402

BMC_INVENTORY = "/xyz/openbmc_project/inventory/system/chassis/bmc"
HOST_INVENTORY = "/xyz/openbmc_project/inventory/system"
MCU_INVENTORY = "/xyz/openbmc_project/inventory/system/chassis/mcu"


def write_release(path: Path, version: str) -> Path:
    """Write an os-release style file carrying VERSION_ID."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(f'NAME="Test BMC"\nVERSION_ID="{version}"\n')
    return path


@pytest.fixture
def settings(tmp_path):
    """Settings with every path under tmp_path and no reset settle wait."""
    return Settings(
        IMG_UPLOAD_DIR=str(tmp_path / "images"),
        MEDIA_DIR=str(tmp_path / "media"),
        OS_RELEASE_FILE=str(tmp_path / "etc" / "os-release"),
        BIOS_RELEASE_FILE=str(tmp_path / "share" / "bios-release"),
        MCU_RELEASE_FILE=str(tmp_path / "share" / "mcu-release"),
        PERSIST_DIR=str(tmp_path / "persist"),
        BOOT_ENV_FILE=str(tmp_path / "env" / "boot-env.json"),
        BOOT_ENV_ALT_FILE=str(tmp_path / "env" / "boot-env-alt.json"),
        INITRAMFS_DIR=str(tmp_path / "initramfs"),
        FLASH_STAGING_DIR=str(tmp_path / "staging"),
        LOG_FILE=str(tmp_path / "logs" / "fwupdater.log"),
        FACTORY_RESET_WAIT=0,
    )


@pytest.fixture
def mock_process_manager():
    """ProcessManager whose systemctl calls all succeed."""
    manager = MagicMock()
    manager.start_unit = AsyncMock()
    manager.stop_unit = AsyncMock()
    manager.mask_unit = AsyncMock()
    return manager


@pytest.fixture
def mock_inventory_client():
    """InventoryClient answering one anchor per interface."""
    anchors = {
        "xyz.openbmc_project.Inventory.Item.Bmc": [BMC_INVENTORY],
        "xyz.openbmc_project.Inventory.Item.System": [HOST_INVENTORY],
        "xyz.openbmc_project.Inventory.Item.Mcu": [MCU_INVENTORY],
    }
    client = MagicMock()
    client.get_subtree_paths = AsyncMock(side_effect=lambda iface: anchors.get(iface, []))
    return client


@pytest.fixture
def item_updater(settings, mock_process_manager, mock_inventory_client):
    """ItemUpdater on real state/boot-env files under tmp_path, mocked systemd."""
    return ItemUpdater(
        settings,
        process_manager=mock_process_manager,
        inventory_client=mock_inventory_client,
    )


@pytest.fixture
def stage_image(settings):
    """Factory staging an uploaded image under IMG_UPLOAD_DIR/<id>."""

    def _stage(version: str, artifacts) -> Path:
        image_dir = Path(settings.IMG_UPLOAD_DIR) / get_id(version)
        image_dir.mkdir(parents=True, exist_ok=True)
        for name in artifacts:
            (image_dir / name).write_bytes(f"{version}:{name}".encode())
        return image_dir

    return _stage


@pytest.fixture
def add_bmc_mount(settings):
    """Factory creating a read-only BMC mount carrying a release file."""

    def _mount(version: str, mount_id: str = None) -> Path:
        mount = Path(settings.MEDIA_DIR) / f"{settings.BMC_ROFS_PREFIX}{mount_id or get_id(version)}"
        write_release(mount / settings.OS_RELEASE_FILE.lstrip("/"), version)
        return mount

    return _mount


@pytest.fixture
def release_writer():
    """The write_release helper, for tests outside this module."""
    return write_release
