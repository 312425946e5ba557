"""Version entity and version string helpers."""

import hashlib
import logging
from pathlib import Path
from typing import Callable, Optional

from fwupdater.models.status import VersionPurpose

logger = logging.getLogger("fwupdater.version")


def get_id(version: str) -> str:
    """Compute the version id: first 8 hex digits of SHA-512(version)."""
    return hashlib.sha512(version.encode("utf-8")).hexdigest()[:8]


def get_release_version(release_file: Path) -> str:
    """Read VERSION_ID from an os-release style file.

    Args:
        release_file: Path to the release file

    Returns:
        Version string without quotes, "" if missing or unreadable
    """
    try:
        with open(release_file, "r", encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if line.startswith("VERSION_ID="):
                    return line.split("=", 1)[1].strip().strip('"')
    except OSError as e:
        logger.error(f"Failed to read release file {release_file}: {e}")
    return ""


class Version:
    """Description of one firmware image.

    Immutable apart from ``source_path``, which is cleared once the staged
    image has been consumed. ``is_functional`` is computed on each access.
    """

    def __init__(
        self,
        version_id: str,
        version: str,
        purpose: VersionPurpose,
        source_path: str,
        path: str,
        functional_check: Optional[Callable[[str], bool]] = None,
    ):
        self.id = version_id
        self.version = version
        self.purpose = purpose
        self.source_path = source_path
        self.path = path
        self._functional_check = functional_check

    @property
    def is_functional(self) -> bool:
        if self._functional_check is None:
            return False
        return self._functional_check(self.path)

    def __repr__(self) -> str:
        return f"Version(id={self.id!r}, version={self.version!r}, purpose={self.purpose.value})"
