"""Boot-loader environment store.

The boot environment is a small JSON document of string variables:

    {
      "bootVersionId": "1a2b3c4d",   # image the boot loader starts
      "fieldmode": "true",           # one-way lockdown latch
      "rwreset": "true"              # factory reset on next boot
    }

Every write goes through a temporary file and an atomic rename, so the boot
loader never reads a half-written environment.
"""

import json
import logging
import os
import shutil
from pathlib import Path
from typing import Dict, Iterable, Optional

BOOT_VERSION_VAR = "bootVersionId"
FIELD_MODE_VAR = "fieldmode"
RW_RESET_VAR = "rwreset"


class BootEnvHelper:
    """Owns the boot pointer, the alternate bank mirror and staged images."""

    def __init__(self, env_file: str, alt_env_file: str, upload_dir: str):
        """Initialize boot environment helper.

        Args:
            env_file: Path of the primary boot environment
            alt_env_file: Path of the alternate bank copy
            upload_dir: Directory holding staged images, one subdir per id
        """
        self.logger = logging.getLogger("fwupdater.boot_env")
        self.env_file = Path(env_file)
        self.alt_env_file = Path(alt_env_file)
        self.upload_dir = Path(upload_dir)

    def _load(self) -> Dict[str, str]:
        if not self.env_file.exists():
            return {}
        try:
            with open(self.env_file, "r", encoding="utf-8") as f:
                data = json.load(f)
            if not isinstance(data, dict):
                raise ValueError(f"expecting json object, got {type(data).__name__}")
            return {str(k): str(v) for k, v in data.items()}
        except Exception as e:
            self.logger.error(f"Failed to read boot environment {self.env_file}: {e}")
            return {}

    def _write_atomic(self, target: Path, env: Dict[str, str]) -> None:
        """Write env to target through a temporary file and rename."""
        target.parent.mkdir(parents=True, exist_ok=True)
        temp_file = target.parent / f".{target.name}.tmp.{os.getpid()}"
        try:
            with open(temp_file, "w", encoding="utf-8") as f:
                json.dump(env, f, indent=2, sort_keys=True)
                f.flush()
                os.fsync(f.fileno())
            temp_file.replace(target)
        except Exception as e:
            temp_file.unlink(missing_ok=True)
            raise OSError(f"Failed to update boot environment {target}: {e}") from e

    def get_env(self, name: str) -> Optional[str]:
        return self._load().get(name)

    def set_env(self, name: str, value: str) -> None:
        env = self._load()
        env[name] = value
        self._write_atomic(self.env_file, env)
        self.logger.info(f"Set boot env {name}={value}")

    @property
    def boot_version_id(self) -> str:
        return self.get_env(BOOT_VERSION_VAR) or ""

    def update_boot_version_id(self, version_id: str) -> None:
        """Point the boot loader at a version ("" clears the pointer)."""
        if self.boot_version_id == version_id:
            self.logger.debug(f"Boot pointer already at {version_id!r}")
            return
        self.set_env(BOOT_VERSION_VAR, version_id)

    def mirror_alt(self) -> None:
        """Copy the primary environment to the alternate bank."""
        self._write_atomic(self.alt_env_file, self._load())
        self.logger.info(f"Mirrored boot environment to {self.alt_env_file}")

    def factory_reset(self) -> None:
        """Request a read-write partition reset on the next boot."""
        self.set_env(RW_RESET_VAR, "true")

    def remove_version(self, version_id: str, image_dir: Optional[Path] = None) -> None:
        """Delete the staged artifacts of a version (no-op if absent).

        ``image_dir`` overrides the version's directory under the upload dir.
        """
        version_dir = image_dir if image_dir is not None else self.upload_dir / version_id
        if version_dir.exists():
            shutil.rmtree(version_dir, ignore_errors=True)
            self.logger.info(f"Removed staged image: {version_dir}")

    def cleanup(self, keep_ids: Iterable[str] = ()) -> None:
        """Remove staged image directories of versions no longer known."""
        if not self.upload_dir.is_dir():
            return
        keep = set(keep_ids)
        for item in self.upload_dir.iterdir():
            if item.is_dir() and not item.is_symlink() and item.name not in keep:
                shutil.rmtree(item, ignore_errors=True)
                self.logger.info(f"Cleaned up stale staged image: {item}")
