"""Activation state machine, one per firmware version.

    Ready ──request Active──▶ Activating ──write done──▶ Active
      ▲                           │
      └──── request Active ─── Failed ◀── write error / job result != done

The write half runs in two steps. ``set_state(Activating)`` starts the
class-specific write and returns while the write service runs. The
job-removed signal for the write unit sets ``flashed`` and re-issues
``set_state(Activating)``, which then completes the activation.
"""

import logging
import weakref
from pathlib import Path
from typing import Callable, List, NamedTuple, Optional

from fwupdater.config import Settings
from fwupdater.errors import InternalFailure, WriteFailed, WriteServiceSignaledFailure
from fwupdater.models.association import Association
from fwupdater.models.images import flash_profile
from fwupdater.models.status import (
    ActivationState,
    JobResult,
    RequestedActivation,
    VersionPurpose,
)
from fwupdater.services.flash import Flasher
from fwupdater.services.priority import MAX_PRIORITY

SignatureVerifier = Callable[[Path, Path], bool]

PROGRESS_WRITE_STARTED = 10
PROGRESS_WRITE_QUEUED = 30
PROGRESS_WRITE_DONE_STEP = 50


class JobRemoved(NamedTuple):
    """Completion signal of a systemd job."""

    job_id: int
    job_path: str
    unit: str
    result: str


class ActivationProgress:
    """Percent complete, published only while Activating."""

    def __init__(self, progress: int = 0):
        self._progress = 0
        self.progress = progress

    @property
    def progress(self) -> int:
        return self._progress

    @progress.setter
    def progress(self, value: int) -> None:
        self._progress = max(0, min(100, int(value)))


class RedundancyPriority:
    """Boot-order priority of an Active activation (0 boots first)."""

    def __init__(self, activation: "Activation", value: int, free_priority: bool = True):
        """Attach a priority to an activation.

        Args:
            activation: Owning activation
            value: Initial priority
            free_priority: Resolve collisions with other versions first;
                False keeps the value verbatim (restored at discovery)
        """
        self._activation = weakref.proxy(activation)
        self._priority = value
        if free_priority:
            self.priority = value
        else:
            self.sdbus_priority(value)

    @property
    def priority(self) -> int:
        return self._priority

    @priority.setter
    def priority(self, value: int) -> None:
        if not 0 <= value <= MAX_PRIORITY:
            raise ValueError(f"Priority out of range: {value}")
        self._activation.parent.reserve_priority(value, self._activation.version_id)
        self.sdbus_priority(value)

    def sdbus_priority(self, value: int) -> int:
        """Set and persist the value without touching other versions."""
        self._activation.parent.save_priority(self._activation.version_id, value)
        self._priority = value
        return value


class Activation:
    """Drives one version through validate → write → activate."""

    def __init__(
        self,
        parent,
        version_id: str,
        path: str,
        purpose: VersionPurpose,
        state: ActivationState,
        associations: List[Association],
        settings: Settings,
        flasher: Flasher,
        signature_verifier: Optional[SignatureVerifier] = None,
    ):
        """Initialize activation.

        Args:
            parent: Owning ItemUpdater (held by weak reference)
            version_id: Id of the version this activation drives
            path: Object path of the version
            purpose: Firmware class, selects the flash profile
            state: Initial activation state
            associations: Per-activation associations (inventory anchor)
            settings: Runtime settings
            flasher: Flasher performing the class-specific write
            signature_verifier: Checks an image directory against the
                signing config; None disables verification
        """
        self.logger = logging.getLogger("fwupdater.activation")
        self.parent = weakref.proxy(parent)
        self.version_id = version_id
        self.path = path
        self.purpose = purpose
        self.profile = flash_profile(purpose, settings)
        self.associations = list(associations)
        self.flasher = flasher
        self.signature_verifier = signature_verifier
        self.signed_image_conf_path = Path(settings.SIGNED_IMAGE_CONF_PATH)

        self._state = state
        self.requested_activation = RequestedActivation.NONE
        self.redundancy_priority: Optional[RedundancyPriority] = None
        self.activation_progress: Optional[ActivationProgress] = None
        self.blocks_transition = False
        self.flashed = False
        self.subscribed = False
        self.error: Optional[str] = None

    @property
    def state(self) -> ActivationState:
        return self._state

    @property
    def priority(self) -> Optional[int]:
        if self.redundancy_priority is None:
            return None
        return self.redundancy_priority.priority

    @property
    def progress(self) -> Optional[int]:
        if self.activation_progress is None:
            return None
        return self.activation_progress.progress

    async def set_state(self, value: ActivationState) -> ActivationState:
        """Transition function; returns the state actually settled into."""
        self.logger.debug(f"{self.version_id}: activation requested {value.value}")

        if value not in (ActivationState.ACTIVE, ActivationState.ACTIVATING):
            # no longer contributes to boot order
            self.redundancy_priority = None

        if value == ActivationState.ACTIVATING:
            if not self.flashed:
                return await self._begin_write()
            return self._finish_activation()

        self._release_markers()
        self.flashed = False
        self.unsubscribe()
        return self._settle(value)

    async def request_activation(self, value: RequestedActivation) -> ActivationState:
        """External activation request.

        Requesting Active from Ready or Failed starts the activation; any
        other request is only recorded.
        """
        self.requested_activation = value
        if value == RequestedActivation.ACTIVE and self._state in (
            ActivationState.READY,
            ActivationState.FAILED,
        ):
            return await self.set_state(ActivationState.ACTIVATING)
        return self._state

    async def on_job_removed(self, event: JobRemoved) -> bool:
        """Handle a job-removed signal.

        Returns:
            True if the signal was for this activation's write unit
        """
        if not self.subscribed or event.unit != self.profile.service_unit:
            return False

        self.logger.debug(
            f"{self.version_id}: job {event.job_id} of {event.unit} finished: {event.result}"
        )
        if event.result == JobResult.DONE.value:
            self.flashed = True
            if self.activation_progress is not None:
                self.activation_progress.progress += PROGRESS_WRITE_DONE_STEP
            await self.set_state(ActivationState.ACTIVATING)
        else:
            err = WriteServiceSignaledFailure(
                f"service:{event.unit} return result: {event.result}"
            )
            self.logger.error(f"{self.version_id}: {err}")
            self.error = str(err)
            await self.set_state(ActivationState.FAILED)
        return True

    def subscribe(self) -> None:
        self.subscribed = True

    def unsubscribe(self) -> None:
        self.subscribed = False

    async def _begin_write(self) -> ActivationState:
        image_dir = self.parent.image_dir(self.version_id)
        if self.signature_verifier is not None and not self._verify_signature(image_dir):
            err = InternalFailure(f"signature verification failed for {self.version_id}")
            self.logger.error(str(err))
            self.error = str(err)
            # Stop the activation process if field mode is enabled
            if self.parent.field_mode_enabled:
                return await self.set_state(ActivationState.FAILED)

        self.subscribe()
        self.parent.free_space(self)

        if self.activation_progress is None:
            self.activation_progress = ActivationProgress()
        self.blocks_transition = True
        self.activation_progress.progress = PROGRESS_WRITE_STARTED
        self._settle(ActivationState.ACTIVATING)

        try:
            complete = await self.flasher.write(self.version_id, self.profile, image_dir)
        except WriteFailed as e:
            self.logger.error(f"{self.version_id}: {e}")
            self.error = str(e)
            return await self.set_state(ActivationState.FAILED)

        if complete:
            self.flashed = True
            return self._finish_activation()

        # the completion signal may already have been handled
        if self._state == ActivationState.ACTIVATING and self.activation_progress is not None:
            self.activation_progress.progress = PROGRESS_WRITE_QUEUED
        return self._state

    def _finish_activation(self) -> ActivationState:
        if self.redundancy_priority is None:
            self.redundancy_priority = RedundancyPriority(self, 0)
        self.parent.save_purpose(self.version_id, self.purpose)
        if self.activation_progress is not None:
            self.activation_progress.progress = 100

        self._release_markers()
        self.flashed = False
        self.unsubscribe()
        self.error = None

        self.parent.retire_source(self.version_id)
        self.parent.create_active_association(self.path)
        if self.profile.registers_functional:
            self.parent.create_functional_association(self.path)
        return self._settle(ActivationState.ACTIVE)

    def _verify_signature(self, image_dir: Path) -> bool:
        try:
            return bool(self.signature_verifier(image_dir, self.signed_image_conf_path))
        except Exception as e:
            self.logger.error(f"{self.version_id}: signature verification error: {e}")
            return False

    def _release_markers(self) -> None:
        self.activation_progress = None
        self.blocks_transition = False

    def _settle(self, value: ActivationState) -> ActivationState:
        if self._state != value:
            self.logger.info(f"{self.version_id}: {self._state.value} -> {value.value}")
        self._state = value
        return value
