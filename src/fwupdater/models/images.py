"""Image artifact names and per-purpose flash profiles."""

from typing import List, NamedTuple, Optional

from fwupdater.config import Settings
from fwupdater.models.status import VersionPurpose

# BMC flash image file name list (partitioned image)
BMC_IMAGES = ["image-kernel", "image-rofs", "image-rwfs", "image-u-boot"]

# BMC full flash image
BMC_FULL_IMAGE = "image-bmc"

BIOS_FULL_IMAGE = "image-bios"

MCU_FULL_IMAGE = "image-mcu"


class FlashProfile(NamedTuple):
    """Class-specific write parameters.

    ``service_unit`` is None for the static BMC layout: artifacts staged in
    the initramfs are written by the update script on the next reboot, so
    the write is complete once they are copied.
    """

    purpose: VersionPurpose
    artifacts: List[str]
    staging_dir: str
    service_unit: Optional[str]
    registers_functional: bool


def flash_profile(purpose: VersionPurpose, settings: Settings) -> FlashProfile:
    """Resolve the flash profile for a purpose."""
    if purpose in (VersionPurpose.BMC, VersionPurpose.SYSTEM):
        return FlashProfile(
            purpose=purpose,
            artifacts=[BMC_FULL_IMAGE] + BMC_IMAGES,
            staging_dir=settings.INITRAMFS_DIR,
            service_unit=None,
            registers_functional=False,
        )
    elif purpose == VersionPurpose.HOST:
        return FlashProfile(
            purpose=purpose,
            artifacts=[BIOS_FULL_IMAGE],
            staging_dir=settings.FLASH_STAGING_DIR,
            service_unit=settings.HOST_FLASH_UNIT,
            registers_functional=True,
        )
    elif purpose == VersionPurpose.AUXILIARY:
        return FlashProfile(
            purpose=purpose,
            artifacts=[MCU_FULL_IMAGE],
            staging_dir=settings.FLASH_STAGING_DIR,
            service_unit=settings.MCU_FLASH_UNIT,
            registers_functional=True,
        )
    raise ValueError(f"No flash profile for purpose: {purpose.value}")
