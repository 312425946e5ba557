"""Process management for systemd unit control."""

import asyncio
from typing import List
import logging


class ProcessManager:
    """Starts, stops and masks systemd units through systemctl."""

    def __init__(self, systemctl: str = "systemctl"):
        """Initialize process manager.

        Args:
            systemctl: systemctl binary to invoke
        """
        self.logger = logging.getLogger("fwupdater.process")
        self.systemctl = systemctl

    async def _systemctl(self, *args: str) -> str:
        """Run a systemctl command and return its stdout.

        Raises:
            RuntimeError: If the command exits non-zero
        """
        process = await asyncio.create_subprocess_exec(
            self.systemctl,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await process.communicate()

        if process.returncode != 0:
            raise RuntimeError(
                f"systemctl {' '.join(args)} failed: "
                f"exit code {process.returncode}, "
                f"stderr: {stderr.decode().strip()}"
            )
        return stdout.decode()

    async def start_unit(self, unit: str) -> None:
        """Queue a start job for a unit without waiting for it to finish.

        The job outcome is delivered later as a job-removed signal.

        Args:
            unit: Unit name (e.g., "bios-update.service")

        Raises:
            RuntimeError: If the start job cannot be queued
        """
        self.logger.info(f"Starting unit: {unit}")
        try:
            await self._systemctl("start", "--no-block", "--job-mode=replace", unit)
        except Exception as e:
            self.logger.error(f"Failed to start {unit}: {e}")
            raise

    async def stop_unit(self, unit: str) -> None:
        self.logger.info(f"Stopping unit: {unit}")
        try:
            await self._systemctl("stop", "--job-mode=replace", unit)
        except Exception as e:
            self.logger.error(f"Failed to stop {unit}: {e}")
            raise

    async def mask_unit(self, units: List[str], runtime: bool = False) -> None:
        """Mask unit files so they cannot be started again.

        Args:
            units: Unit names to mask
            runtime: Mask only until next reboot
        """
        args = ["mask"]
        if runtime:
            args.append("--runtime")
        self.logger.info(f"Masking units: {units}")
        try:
            await self._systemctl(*args, *units)
        except Exception as e:
            self.logger.error(f"Failed to mask {units}: {e}")
            raise
