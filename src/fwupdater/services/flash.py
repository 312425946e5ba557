"""Class-specific flash write: stage artifacts and start the write service."""

from pathlib import Path
from typing import List, Optional
import logging

import aiofiles

from fwupdater.config import Settings
from fwupdater.errors import WriteFailed
from fwupdater.models.images import BMC_FULL_IMAGE, BMC_IMAGES, FlashProfile
from fwupdater.services.process import ProcessManager


class Flasher:
    """Stages image artifacts and hands them to the external write service."""

    def __init__(
        self,
        settings: Settings,
        process_manager: Optional[ProcessManager] = None,
        chunk_size: int = 64 * 1024,
    ):
        """Initialize flasher.

        Args:
            settings: Runtime settings (upload and staging directories)
            process_manager: ProcessManager used to start write units
            chunk_size: Copy buffer size
        """
        self.logger = logging.getLogger("fwupdater.flash")
        self.upload_dir = Path(settings.IMG_UPLOAD_DIR)
        self.process_manager = process_manager or ProcessManager()
        self.chunk_size = chunk_size

    async def write(
        self, version_id: str, profile: FlashProfile, source_dir: Optional[Path] = None
    ) -> bool:
        """Stage the artifacts of a version and start its write service.

        Args:
            version_id: Version whose staged image is written
            profile: Flash profile of the version's purpose
            source_dir: Directory holding the image; defaults to the
                version's directory under the upload dir

        Returns:
            True if the write is already complete (no write service for
            this class), False if completion will be signaled later

        Raises:
            WriteFailed: If no artifact is staged or the write service
                cannot be started
        """
        if source_dir is None:
            source_dir = self.upload_dir / version_id
        target_dir = Path(profile.staging_dir)

        artifacts = self._select_artifacts(source_dir, profile)
        if not artifacts:
            raise WriteFailed(
                f"Cannot find {profile.purpose.value} images in {source_dir}"
            )

        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            for artifact in artifacts:
                await self._copy_file(source_dir / artifact, target_dir / artifact)
        except OSError as e:
            raise WriteFailed(f"Failed to stage {profile.purpose.value} image: {e}") from e

        if profile.service_unit is None:
            self.logger.info(
                f"Staged {artifacts} to {target_dir}, image is applied on next reboot"
            )
            return True

        try:
            await self.process_manager.start_unit(profile.service_unit)
        except Exception as e:
            raise WriteFailed(
                f"Error in starting write service {profile.service_unit}: {e}"
            ) from e
        return False

    def _select_artifacts(self, source_dir: Path, profile: FlashProfile) -> List[str]:
        """Pick the artifacts to stage.

        For the BMC layout the full image wins; otherwise every partition
        image that is present is staged.
        """
        if BMC_FULL_IMAGE in profile.artifacts:
            if (source_dir / BMC_FULL_IMAGE).exists():
                return [BMC_FULL_IMAGE]
            return [name for name in BMC_IMAGES if (source_dir / name).exists()]

        if all((source_dir / name).exists() for name in profile.artifacts):
            return list(profile.artifacts)
        return []

    async def _copy_file(self, src: Path, dst: Path) -> None:
        """Copy through a temp file, then rename over the destination."""
        tmp_path = dst.parent / f"{dst.name}.tmp"
        try:
            async with aiofiles.open(src, "rb") as fin:
                async with aiofiles.open(tmp_path, "wb") as fout:
                    while chunk := await fin.read(self.chunk_size):
                        await fout.write(chunk)
            tmp_path.replace(dst)
            self.logger.debug(f"Copied {src} -> {dst}")
        except Exception:
            tmp_path.unlink(missing_ok=True)
            raise
