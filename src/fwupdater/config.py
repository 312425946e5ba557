"""Runtime settings for the firmware update orchestrator."""

import logging
from typing import Dict, Literal

from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("fwupdater.config")

ENV_PREFIX = "FWUPDATER_"
LOG_LEVEL_LITERAL = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class _PathSettings(BaseModel):
    SOFTWARE_OBJPATH: str = "/xyz/openbmc_project/software"
    IMG_UPLOAD_DIR: str = "/tmp/images"
    MEDIA_DIR: str = "/media"
    BMC_ROFS_PREFIX: str = "rofs-"
    OS_RELEASE_FILE: str = "/etc/os-release"
    BIOS_RELEASE_FILE: str = "/usr/share/phosphor-bmc-code-mgmt/bios-release"
    MCU_RELEASE_FILE: str = "/usr/share/phosphor-bmc-code-mgmt/mcu-release"
    PERSIST_DIR: str = "/var/lib/phosphor-bmc-code-mgmt"
    BOOT_ENV_FILE: str = "/var/lib/fwupdater/boot-env.json"
    BOOT_ENV_ALT_FILE: str = "/var/lib/fwupdater/boot-env-alt.json"

    # where the write step stages artifacts
    INITRAMFS_DIR: str = "/run/initramfs"
    FLASH_STAGING_DIR: str = "/tmp"


class _ActivationSettings(BaseModel):
    HOST_FLASH_UNIT: str = "bios-update.service"
    MCU_FLASH_UNIT: str = "mcu-update.service"
    USR_LOCAL_MOUNT_UNIT: str = "usr-local.mount"

    # residency cap per purpose, counted over Active + Failed activations
    ACTIVE_MAX_ALLOWED: Dict[str, int] = {
        "BMC": 2,
        "System": 2,
        "Host": 1,
        "Auxiliary": 1,
    }

    WANT_SIGNATURE_VERIFY: bool = False
    SIGNED_IMAGE_CONF_PATH: str = "/etc/activationdata"

    FACTORY_RESET_WAIT: int = 10  # seconds


class _InventorySettings(BaseModel):
    MAPPER_URL: str = "http://localhost:9080"
    INVENTORY_PATH: str = "/xyz/openbmc_project/inventory"
    BMC_INVENTORY_INTERFACE: str = "xyz.openbmc_project.Inventory.Item.Bmc"
    HOST_INVENTORY_INTERFACE: str = "xyz.openbmc_project.Inventory.Item.System"
    MCU_INVENTORY_INTERFACE: str = "xyz.openbmc_project.Inventory.Item.Mcu"


class _ServiceSettings(BaseModel):
    LOG_FILE: str = "./logs/fwupdater.log"
    LOG_LEVEL: LOG_LEVEL_LITERAL = "INFO"
    LISTEN_HOST: str = "0.0.0.0"
    LISTEN_PORT: int = 12316


class Settings(_PathSettings, _ActivationSettings, _InventorySettings, _ServiceSettings):
    """fwupdater runtime settings."""

    def active_max(self, purpose) -> int:
        """Residency cap for a purpose (accepts the enum or its value)."""
        key = getattr(purpose, "value", purpose)
        return self.ACTIVE_MAX_ALLOWED.get(key, 1)


def load_settings() -> Settings:
    """Parse settings from FWUPDATER_* environment variables."""
    try:

        class _SettingParser(Settings, BaseSettings):
            model_config = SettingsConfigDict(
                validate_default=True,
                env_prefix=ENV_PREFIX,
            )

        _parsed = _SettingParser()
        return Settings.model_construct(**_parsed.model_dump())
    except Exception as e:
        logger.error(f"failed to parse fwupdater settings: {e!r}")
        logger.warning("use default settings ...")
        return Settings()
