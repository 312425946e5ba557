"""Status enums for versions and activations."""

from enum import Enum


class VersionPurpose(str, Enum):
    """Firmware class a version belongs to."""

    BMC = "BMC"
    HOST = "Host"
    AUXILIARY = "Auxiliary"
    SYSTEM = "System"
    UNKNOWN = "Unknown"

    @classmethod
    def from_string(cls, value: str) -> "VersionPurpose":
        """Map a purpose string to the enum, Unknown when unrecognized.

        Accepts both the bare name ("Host") and the dotted form used on the
        object bus ("xyz.openbmc_project.Software.Version.VersionPurpose.Host").
        """
        if not value:
            return cls.UNKNOWN
        name = value.rsplit(".", 1)[-1]
        for member in cls:
            if member.value == name:
                return member
        # the auxiliary controller is reported as MCU by some producers
        if name == "MCU":
            return cls.AUXILIARY
        return cls.UNKNOWN


class ActivationState(str, Enum):
    """Activation lifecycle.

    State transitions:
    Ready → Activating → Active
              ↓
            Failed
    Invalid is terminal (image failed validation).
    """

    INVALID = "Invalid"
    READY = "Ready"
    ACTIVATING = "Activating"
    ACTIVE = "Active"
    FAILED = "Failed"


class RequestedActivation(str, Enum):
    NONE = "None"
    ACTIVE = "Active"


class ActivationStatus(str, Enum):
    """Image validator result."""

    READY = "ready"
    INVALID = "invalid"


class JobResult(str, Enum):
    """systemd job results; only DONE is success."""

    DONE = "done"
    CANCELED = "canceled"
    TIMEOUT = "timeout"
    FAILED = "failed"
    DEPENDENCY = "dependency"
    SKIPPED = "skipped"
