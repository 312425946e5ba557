"""Orchestrator owning the version, activation and association catalogs.

All catalog and state-machine mutation happens on the event loop; the only
blocking call is the factory reset settle wait.
"""

import logging
import time
from pathlib import Path
from typing import Dict, List, Optional

from fwupdater.config import Settings
from fwupdater.errors import CatalogInconsistency, InventoryLookupFailed, NotAllowed, ValidationFailed
from fwupdater.models.association import AssociationSet, inventory_association
from fwupdater.models.status import ActivationState, VersionPurpose
from fwupdater.models.version import Version, get_id, get_release_version
from fwupdater.services.activation import (
    Activation,
    JobRemoved,
    RedundancyPriority,
    SignatureVerifier,
)
from fwupdater.services.boot_env import FIELD_MODE_VAR, BootEnvHelper
from fwupdater.services.flash import Flasher
from fwupdater.services.inventory import InventoryClient
from fwupdater.services.priority import (
    FAILED_EVICTION_PRIORITY,
    MAX_PRIORITY,
    EvictionQueue,
    lowest_priority_version,
    resolve_priority_collisions,
)
from fwupdater.services.process import ProcessManager
from fwupdater.services.state_manager import StateManager
from fwupdater.utils.verification import validate_image_or_raise

# classes whose priority drives the boot-loader pointer
BOOT_PURPOSES = (VersionPurpose.BMC, VersionPurpose.SYSTEM)

UPLOADABLE_PURPOSES = (
    VersionPurpose.BMC,
    VersionPurpose.HOST,
    VersionPurpose.SYSTEM,
    VersionPurpose.AUXILIARY,
)


class ItemUpdater:
    """Tracks every known firmware version and its activation."""

    def __init__(
        self,
        settings: Settings,
        state_manager: Optional[StateManager] = None,
        boot_env: Optional[BootEnvHelper] = None,
        process_manager: Optional[ProcessManager] = None,
        flasher: Optional[Flasher] = None,
        inventory_client: Optional[InventoryClient] = None,
        signature_verifier: Optional[SignatureVerifier] = None,
    ):
        """Wire the orchestrator to its collaborators.

        Args:
            settings: Runtime settings
            state_manager: Persisted priority/purpose store
            boot_env: Boot-loader environment store
            process_manager: systemd unit control
            flasher: Class-specific write
            inventory_client: Object mapper client for inventory anchors
            signature_verifier: Image signature check, used only when
                settings.WANT_SIGNATURE_VERIFY is set
        """
        self.logger = logging.getLogger("fwupdater.item_updater")
        self.settings = settings
        self.state_manager = state_manager or StateManager(settings.PERSIST_DIR)
        self.boot_env = boot_env or BootEnvHelper(
            settings.BOOT_ENV_FILE, settings.BOOT_ENV_ALT_FILE, settings.IMG_UPLOAD_DIR
        )
        self.process_manager = process_manager or ProcessManager()
        self.flasher = flasher or Flasher(settings, self.process_manager)
        self.inventory_client = inventory_client or InventoryClient(
            settings.MAPPER_URL, settings.INVENTORY_PATH
        )
        self.signature_verifier = signature_verifier if settings.WANT_SIGNATURE_VERIFY else None

        self.versions: Dict[str, Version] = {}
        self.activations: Dict[str, Activation] = {}
        self.associations = AssociationSet()

        self.bmc_inventory_path = ""
        self.host_inventory_path = ""
        self.mcu_inventory_path = ""

        self._field_mode_enabled = False

    # ------------------------------------------------------------------
    # Catalog helpers
    # ------------------------------------------------------------------

    def version_path(self, version_id: str) -> str:
        return f"{self.settings.SOFTWARE_OBJPATH.rstrip('/')}/{version_id}"

    def is_functional(self, path: str) -> bool:
        return self.associations.is_functional(path)

    def image_dir(self, version_id: str) -> Path:
        """Directory holding the staged image of a version."""
        version = self.versions.get(version_id)
        if version is not None and version.source_path:
            return Path(version.source_path)
        return Path(self.settings.IMG_UPLOAD_DIR) / version_id

    def _inventory_path(self, purpose: VersionPurpose) -> str:
        if purpose == VersionPurpose.HOST:
            return self.host_inventory_path
        elif purpose == VersionPurpose.AUXILIARY:
            return self.mcu_inventory_path
        return self.bmc_inventory_path

    def _new_activation(
        self,
        version_id: str,
        path: str,
        purpose: VersionPurpose,
        state: ActivationState,
        associations,
    ) -> Activation:
        return Activation(
            self,
            version_id,
            path,
            purpose,
            state,
            associations,
            self.settings,
            self.flasher,
            self.signature_verifier,
        )

    # ------------------------------------------------------------------
    # Associations
    # ------------------------------------------------------------------

    def create_active_association(self, path: str) -> None:
        self.associations.create_active(path)

    def create_functional_association(self, path: str) -> None:
        self.associations.create_functional(path)

    def create_updateable_association(self, path: str) -> None:
        self.associations.create_updateable(path)

    def remove_associations(self, path: str) -> None:
        self.associations.remove_path(path)

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_activation(
        self,
        purpose: Optional[str],
        version: Optional[str],
        file_path: Optional[str],
    ) -> Optional[str]:
        """Intake for new-image notifications.

        Notifications missing the version or path, or carrying a purpose
        that cannot be updated, are ignored.

        Returns:
            The version id, or None if the notification was ignored
        """
        value = VersionPurpose.from_string(purpose or "")
        if not version or not file_path or value not in UPLOADABLE_PURPOSES:
            self.logger.debug(
                f"Ignoring image notification: purpose={purpose!r}, "
                f"version={version!r}, path={file_path!r}"
            )
            return None
        return self.create_from_upload(file_path, value, version)

    def create_from_upload(self, file_path: str, purpose: VersionPurpose, version: str) -> str:
        """Register a newly staged image as a Ready or Invalid version.

        Calling this again for a known version id is a no-op.
        """
        version_id = get_id(version)
        if version_id in self.activations:
            self.logger.info(f"Version {version} ({version_id}) already known, ignoring")
            return version_id

        path = self.version_path(version_id)
        state = ActivationState.INVALID
        associations = []
        try:
            validate_image_or_raise(Path(file_path), purpose)
            state = ActivationState.READY
            inventory_path = self._inventory_path(purpose)
            if inventory_path:
                associations.append(inventory_association(inventory_path))
        except ValidationFailed as e:
            self.logger.error(f"Image {version} ({version_id}): {e}")

        self.activations[version_id] = self._new_activation(
            version_id, path, purpose, state, associations
        )
        self.versions[version_id] = Version(
            version_id, version, purpose, file_path, path, self.is_functional
        )
        self.logger.info(
            f"Created {purpose.value} version {version} ({version_id}) in state {state.value}"
        )
        return version_id

    def _create_resident_version(
        self, version: str, purpose: VersionPurpose, inventory_path: str
    ) -> str:
        """Register an image already running on the device as Active."""
        version_id = get_id(version)
        if version_id in self.versions:
            self.logger.debug(f"{purpose.value} version {version} already known")
            return version_id

        self.logger.info(f"Created {purpose.value} version: {version}")
        path = self.version_path(version_id)
        self.create_functional_association(path)

        associations = []
        if inventory_path:
            associations.append(inventory_association(inventory_path))

        # active since this image is running
        self.create_active_association(path)

        self.versions[version_id] = Version(
            version_id, version, purpose, "", path, self.is_functional
        )
        activation = self._new_activation(
            version_id, path, purpose, ActivationState.ACTIVE, associations
        )
        self.activations[version_id] = activation

        priority = self.state_manager.restore_priority(version_id)
        if priority is None:
            priority = 0
        activation.redundancy_priority = RedundancyPriority(
            activation, priority, free_priority=False
        )
        return version_id

    def create_host_version(self, version: str) -> str:
        return self._create_resident_version(
            version, VersionPurpose.HOST, self.host_inventory_path
        )

    def create_mcu_version(self, version: str) -> str:
        return self._create_resident_version(
            version, VersionPurpose.AUXILIARY, self.mcu_inventory_path
        )

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    def process_all_images(self) -> None:
        self.process_bmc_image()
        self.process_host_image()
        self.process_mcu_image()

    def process_host_image(self) -> None:
        """Create the running host version from the bios release file."""
        release = Path(self.settings.BIOS_RELEASE_FILE)
        if not release.is_file():
            self.logger.error(f"Failed to read bios release: {release}")
            return

        version = get_release_version(release)
        if version:
            self.create_host_version(version)
        else:
            self.logger.info("Invalid version, skip create host version!")

    def process_mcu_image(self) -> None:
        """Create the running auxiliary controller version from its release file."""
        release = Path(self.settings.MCU_RELEASE_FILE)
        if not release.is_file():
            self.logger.info(f"Failed to read mcu release: {release}")
            return

        version = get_release_version(release)
        if version:
            self.create_mcu_version(version)
        else:
            self.logger.info("Invalid version, skip create mcu version!")

    def process_bmc_image(self) -> None:
        """Rebuild the BMC catalog from the read-only mounts.

        When fewer than two BMC copies are resident, a placeholder mount for
        the running release is materialized and the scan runs once more.
        The boot environment is then mirrored to the alternate bank.
        """
        media_dir = Path(self.settings.MEDIA_DIR)
        try:
            media_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error(f"Failed to prepare dir {media_dir}: {e}")
            return

        self._scan_bmc_mounts(media_dir)

        resident = sum(1 for a in self.activations.values() if a.purpose in BOOT_PURPOSES)
        if resident < 2:
            try:
                if self._materialize_running_mount(media_dir):
                    self._scan_bmc_mounts(media_dir)
            except OSError as e:
                self.logger.error(f"Failed to create placeholder mount: {e}")

        # a corrupted mount erased during the scan may have cleared the pointer
        if self._priority_holders(purposes=BOOT_PURPOSES):
            self.reset_boot_pointer()
        self.mirror_uboot_to_alt()

    def _release_file_in(self, mount: Path) -> Path:
        return mount / self.settings.OS_RELEASE_FILE.lstrip("/")

    def _materialize_running_mount(self, media_dir: Path) -> bool:
        os_release = Path(self.settings.OS_RELEASE_FILE)
        version = get_release_version(os_release)
        if not version:
            self.logger.error(f"No running BMC version in {os_release}")
            return False

        version_id = get_id(version)
        mount = media_dir / f"{self.settings.BMC_ROFS_PREFIX}{version_id}"
        release_link = self._release_file_in(mount)
        if release_link.exists() or release_link.is_symlink():
            return False

        release_link.parent.mkdir(parents=True, exist_ok=True)
        release_link.symlink_to(os_release)
        self.logger.info(f"Created placeholder mount {mount} for running version {version}")
        return True

    def _scan_bmc_mounts(self, media_dir: Path) -> None:
        prefix = self.settings.BMC_ROFS_PREFIX
        functional_version = get_release_version(Path(self.settings.OS_RELEASE_FILE))

        for mount in sorted(media_dir.iterdir()):
            if not mount.name.startswith(prefix):
                continue

            mount_id = mount.name[len(prefix):]
            os_release = self._release_file_in(mount)
            if not os_release.is_file():
                # The mount name carries the id; the image is likely corrupted
                self.logger.error(f"Failed to read osRelease: {os_release}")
                self.erase(mount_id)
                continue

            version = get_release_version(os_release)
            if not version:
                self.logger.error(f"Failed to read version from osRelease: {os_release}")
                self.erase(mount_id)
                continue

            version_id = get_id(version)
            # Same image flashed to both banks
            if version_id in self.versions:
                continue

            purpose = self.state_manager.restore_purpose(version_id)
            if purpose not in BOOT_PURPOSES:
                purpose = VersionPurpose.BMC

            path = self.version_path(version_id)
            if version == functional_version:
                self.create_functional_association(path)

            associations = []
            if self.bmc_inventory_path:
                associations.append(inventory_association(self.bmc_inventory_path))
            self.create_active_association(path)
            # All updateable firmware components expose the updateable association
            self.create_updateable_association(path)

            version_obj = Version(version_id, version, purpose, "", path, self.is_functional)
            is_functional = version_obj.is_functional
            self.versions[version_id] = version_obj

            activation = self._new_activation(
                version_id, path, purpose, ActivationState.ACTIVE, associations
            )
            self.activations[version_id] = activation

            priority = self.state_manager.restore_priority(version_id)
            if priority is None:
                if is_functional:
                    priority = 0
                else:
                    self.logger.error(f"Unable to restore priority for {version_id}")
                    priority = MAX_PRIORITY
            activation.redundancy_priority = RedundancyPriority(
                activation, priority, free_priority=False
            )
            self.save_purpose(version_id, purpose)

    # ------------------------------------------------------------------
    # Priority allocation and boot pointer
    # ------------------------------------------------------------------

    def _priority_holders(self, purposes=None) -> List[tuple]:
        return [
            (vid, act.redundancy_priority.priority)
            for vid, act in self.activations.items()
            if act.redundancy_priority is not None
            and (purposes is None or act.purpose in purposes)
        ]

    def _purpose_of(self, version_id: str) -> VersionPurpose:
        version = self.versions.get(version_id)
        if version is not None:
            return version.purpose
        activation = self.activations.get(version_id)
        if activation is not None:
            return activation.purpose
        return VersionPurpose.UNKNOWN

    def reserve_priority(self, value: int, version_id: str) -> None:
        """Give ``value`` to ``version_id``, bumping same-purpose collisions.

        Bumped priorities are persisted. For boot classes the boot pointer
        then follows the lowest priority.
        """
        purpose = self._purpose_of(version_id)
        current = self._priority_holders(purposes=(purpose,))
        resolution = resolve_priority_collisions(current, version_id, value)

        for vid, new_value in resolution.bumps.items():
            self.logger.info(f"Priority collision: moving {vid} to {new_value}")
            self.activations[vid].redundancy_priority.sdbus_priority(new_value)

        if purpose in BOOT_PURPOSES:
            self.update_boot_pointer(resolution.lowest_version_id)

    def save_priority(self, version_id: str, value: int) -> None:
        try:
            self.state_manager.store_priority(version_id, value)
        except OSError as e:
            self.logger.error(f"Failed to persist priority of {version_id}: {e}")

    def save_purpose(self, version_id: str, purpose: VersionPurpose) -> None:
        try:
            self.state_manager.store_purpose(version_id, purpose)
        except OSError as e:
            self.logger.error(f"Failed to persist purpose of {version_id}: {e}")

    def update_boot_pointer(self, version_id: str) -> None:
        try:
            self.boot_env.update_boot_version_id(version_id)
        except OSError as e:
            self.logger.error(f"Failed to update boot pointer to {version_id!r}: {e}")

    def reset_boot_pointer(self) -> None:
        """Point the boot loader at the lowest-priority remaining version."""
        lowest = lowest_priority_version(self._priority_holders(purposes=BOOT_PURPOSES))
        if not lowest:
            lowest = lowest_priority_version(self._priority_holders())
        self.update_boot_pointer(lowest)

    def mirror_uboot_to_alt(self) -> None:
        try:
            self.boot_env.mirror_alt()
        except OSError as e:
            self.logger.error(f"Failed to mirror boot environment: {e}")

    # ------------------------------------------------------------------
    # Eviction and erase
    # ------------------------------------------------------------------

    def free_space(self, caller: Activation) -> None:
        """Evict same-purpose versions so the caller fits under the cap.

        Counts Active and Failed activations of the caller's purpose other
        than the caller, and erases the highest priority ones (Failed
        first) while the count is at or above the cap. The functional
        version is never evicted when the cap is above one.
        """
        cap = self.settings.active_max(caller.purpose)
        versions_pq = EvictionQueue()
        count = 0

        for vid, activation in self.activations.items():
            if activation.state not in (ActivationState.ACTIVE, ActivationState.FAILED):
                continue
            if activation.purpose != caller.purpose or vid == caller.version_id:
                continue
            count += 1

            version = self.versions.get(vid)
            if version is not None and version.is_functional and cap > 1:
                continue

            priority = FAILED_EVICTION_PRIORITY
            if (
                activation.state == ActivationState.ACTIVE
                and activation.redundancy_priority is not None
            ):
                priority = activation.redundancy_priority.priority
            versions_pq.push(priority, vid)

        while count >= cap and versions_pq:
            victim = versions_pq.pop()
            self.logger.info(
                f"Evicting {victim} to make room for {caller.version_id} "
                f"({caller.purpose.value} cap {cap})"
            )
            self.erase(victim)
            count -= 1

    def erase(self, version_id: str) -> bool:
        """Remove a version and everything attached to it.

        The boot pointer is recomputed after the activation leaves the
        catalog and before any file is deleted, so it never names an image
        that no longer exists.

        Returns:
            False if the version is the running image and cannot be removed
        """
        version = self.versions.get(version_id)
        if version is not None:
            if version.is_functional and self.settings.active_max(version.purpose) > 1:
                self.logger.error(
                    f"Version {version_id} is currently running on the BMC. Unable to remove."
                )
                return False

        image_dir = self.image_dir(version_id)
        self.remove_associations(self.version_path(version_id))

        try:
            self._pop_activation(version_id)
        except CatalogInconsistency as e:
            self.logger.error(f"{e}. Unable to remove activation.")

        self.reset_boot_pointer()

        try:
            self.boot_env.remove_version(version_id, image_dir)
            self.state_manager.remove_persist_data(version_id)
        except OSError as e:
            self.logger.error(f"Failed to remove data of {version_id}: {e}")

        try:
            self._pop_version(version_id)
        except CatalogInconsistency as e:
            self.logger.error(f"{e}. Unable to remove version.")

        self.logger.info(f"Erased version {version_id}")
        return True

    def _pop_activation(self, version_id: str) -> Activation:
        try:
            return self.activations.pop(version_id)
        except KeyError:
            raise CatalogInconsistency(f"version {version_id} not in activations") from None

    def _pop_version(self, version_id: str) -> Version:
        try:
            return self.versions.pop(version_id)
        except KeyError:
            raise CatalogInconsistency(f"version {version_id} not in versions") from None

    def delete_all(self) -> None:
        """Erase every non-functional version."""
        deletable = [vid for vid, v in self.versions.items() if not v.is_functional]
        for version_id in deletable:
            self.erase(version_id)
        self.boot_env.cleanup(keep_ids=list(self.versions))

    def retire_source(self, version_id: str) -> None:
        """Drop the staged upload of a version once it has been written."""
        image_dir = self.image_dir(version_id)
        version = self.versions.get(version_id)
        if version is not None:
            version.source_path = ""
        try:
            self.boot_env.remove_version(version_id, image_dir)
        except OSError as e:
            self.logger.error(f"Failed to remove staged image of {version_id}: {e}")

    # ------------------------------------------------------------------
    # Host version report
    # ------------------------------------------------------------------

    def update_host_version(self, version: str) -> None:
        """Replace the Active host entry with an externally reported version.

        Only catalog entries change; nothing is erased from flash and the
        boot pointer is left alone.
        """
        if not version:
            self.logger.error("Host version must contain data")
            return

        self.logger.info(f"Try to update host version: {version}")
        version_id = get_id(version)
        active_host_vid = ""
        non_active_host_vids: List[str] = []

        for activation in self.activations.values():
            host_version = self.versions.get(activation.version_id)
            if host_version is None:
                self.logger.error(f"Cannot find mapping version data for {activation.version_id}")
                continue
            if host_version.purpose != VersionPurpose.HOST:
                continue
            if activation.state == ActivationState.ACTIVE:
                active_host_vid = activation.version_id
            else:
                non_active_host_vids.append(activation.version_id)

        self.logger.debug(
            f"Active host: {active_host_vid}, non-active hosts: {len(non_active_host_vids)}"
        )

        if active_host_vid:
            if version_id != active_host_vid:
                self.remove_associations(self.version_path(active_host_vid))
                self.activations.pop(active_host_vid, None)
                self.versions.pop(active_host_vid, None)
                self.create_host_version(version)
            return

        if not non_active_host_vids:
            self.create_host_version(version)
            return

        self.logger.error("There must exist one active host!")
        if version_id not in non_active_host_vids:
            self.create_host_version(version)
        else:
            self.logger.info("Ignore creating the same version as a non-active host entry")

    # ------------------------------------------------------------------
    # Completion signals
    # ------------------------------------------------------------------

    async def dispatch_job_removed(self, event: JobRemoved) -> int:
        """Deliver a job-removed signal to subscribed activations.

        Returns:
            Number of activations that consumed the signal
        """
        handled = 0
        for activation in list(self.activations.values()):
            if not activation.subscribed:
                continue
            if await activation.on_job_removed(event):
                handled += 1
        if not handled:
            self.logger.debug(f"Ignoring job-removed for {event.unit}: {event.result}")
        return handled

    # ------------------------------------------------------------------
    # Field mode, factory reset, inventory
    # ------------------------------------------------------------------

    @property
    def field_mode_enabled(self) -> bool:
        return self._field_mode_enabled

    async def set_field_mode(self, value: bool) -> bool:
        """Set the field-mode latch; it can only go from False to True.

        Raises:
            NotAllowed: If clearing an enabled latch
        """
        if value and not self._field_mode_enabled:
            self._field_mode_enabled = True
            try:
                self.boot_env.set_env(FIELD_MODE_VAR, "true")
            except OSError as e:
                self.logger.error(f"Failed to persist field mode: {e}")

            unit = self.settings.USR_LOCAL_MOUNT_UNIT
            try:
                await self.process_manager.stop_unit(unit)
                await self.process_manager.mask_unit([unit])
            except RuntimeError as e:
                self.logger.error(f"Failed to lock down {unit}: {e}")
            self.logger.info("Field mode enabled")
        elif not value and self._field_mode_enabled:
            raise NotAllowed("FieldMode is not allowed to be cleared")

        return self._field_mode_enabled

    async def restore_field_mode_status(self) -> None:
        if self.boot_env.get_env(FIELD_MODE_VAR) == "true":
            await self.set_field_mode(True)

    def reset(self) -> None:
        """Factory reset; blocks for the settle interval.

        The boot environment must settle before returning, otherwise an
        immediate reboot will not factory reset.
        """
        self.boot_env.factory_reset()
        time.sleep(self.settings.FACTORY_RESET_WAIT)
        self.logger.info("BMC factory reset will take effect upon reboot.")

    async def _lookup_inventory(self, interface: str) -> str:
        try:
            paths = await self.inventory_client.get_subtree_paths(interface)
        except InventoryLookupFailed as e:
            self.logger.error(f"Error in mapper lookup: {e}")
            return ""
        return paths[0] if paths else ""

    async def set_inventory_paths(self) -> None:
        self.bmc_inventory_path = await self._lookup_inventory(
            self.settings.BMC_INVENTORY_INTERFACE
        )
        self.host_inventory_path = await self._lookup_inventory(
            self.settings.HOST_INVENTORY_INTERFACE
        )
        self.mcu_inventory_path = await self._lookup_inventory(
            self.settings.MCU_INVENTORY_INTERFACE
        )

    def shutdown(self) -> None:
        """Flush priorities and mirror the boot environment."""
        for version_id, priority in self._priority_holders():
            self.save_priority(version_id, priority)
        self.mirror_uboot_to_alt()
        self.logger.info("ItemUpdater shut down")
