"""Image validation: required artifacts per firmware class."""

from pathlib import Path
from typing import List
import logging

from fwupdater.errors import ValidationFailed
from fwupdater.models.images import BIOS_FULL_IMAGE, BMC_FULL_IMAGE, BMC_IMAGES, MCU_FULL_IMAGE
from fwupdater.models.status import ActivationStatus, VersionPurpose

logger = logging.getLogger("fwupdater.verification")


def check_image(file_path: Path, image_list: List[str]) -> bool:
    """Check that every listed artifact exists and is readable in file_path."""
    for image in image_list:
        image_file = Path(file_path) / image
        try:
            with open(image_file, "rb"):
                pass
        except OSError:
            logger.debug(f"Missing image artifact: {image_file}")
            return False
    return True


def validate_squashfs_image(file_path: Path) -> ActivationStatus:
    """BMC/System: the full image, or else every partition image."""
    if check_image(file_path, [BMC_FULL_IMAGE]):
        return ActivationStatus.READY
    if check_image(file_path, BMC_IMAGES):
        return ActivationStatus.READY
    logger.error(f"Failed to find the needed BMC images in {file_path}")
    return ActivationStatus.INVALID


def validate_bios_image(file_path: Path) -> ActivationStatus:
    if not check_image(file_path, [BIOS_FULL_IMAGE]):
        logger.error(f"Failed to find the needed BIOS images in {file_path}")
        return ActivationStatus.INVALID
    return ActivationStatus.READY


def validate_mcu_image(file_path: Path) -> ActivationStatus:
    if not check_image(file_path, [MCU_FULL_IMAGE]):
        logger.error(f"Failed to find the needed MCU images in {file_path}")
        return ActivationStatus.INVALID
    return ActivationStatus.READY


def validate_image(file_path: Path, purpose: VersionPurpose) -> ActivationStatus:
    """Dispatch validation by purpose.

    Args:
        file_path: Staged image directory
        purpose: Firmware class of the image

    Returns:
        ActivationStatus.READY or ActivationStatus.INVALID
    """
    if purpose in (VersionPurpose.BMC, VersionPurpose.SYSTEM):
        return validate_squashfs_image(file_path)
    elif purpose == VersionPurpose.HOST:
        return validate_bios_image(file_path)
    elif purpose == VersionPurpose.AUXILIARY:
        return validate_mcu_image(file_path)
    logger.error(f"No validator for purpose {purpose.value}")
    return ActivationStatus.INVALID


def validate_image_or_raise(file_path: Path, purpose: VersionPurpose) -> None:
    """Validate an image, raise if artifacts are missing.

    Raises:
        ValidationFailed: If the image is not ready
    """
    if validate_image(file_path, purpose) != ActivationStatus.READY:
        raise ValidationFailed(
            f"{purpose.value} image at {file_path} is missing required artifacts"
        )
