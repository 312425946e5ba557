"""Error kinds raised by the update orchestrator.

Every error is contained at the operation that raised it; none of them is
allowed to stop request dispatch.
"""


class UpdaterError(Exception):
    """Base class, carries an application-level error code."""

    code = "INTERNAL_FAILURE"

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class InternalFailure(UpdaterError):
    code = "INTERNAL_FAILURE"


class ValidationFailed(UpdaterError):
    """Image is missing required artifacts (terminal, state Invalid)."""

    code = "VALIDATION_FAILED"


class WriteFailed(UpdaterError):
    """Staged artifact missing or write service could not be started."""

    code = "WRITE_FAILED"


class WriteServiceSignaledFailure(UpdaterError):
    """Write service completed with a result other than 'done'."""

    code = "WRITE_SERVICE_FAILED"


class InventoryLookupFailed(UpdaterError):
    code = "INVENTORY_LOOKUP_FAILED"


class NotAllowed(UpdaterError):
    code = "NOT_ALLOWED"


class CatalogInconsistency(UpdaterError):
    code = "CATALOG_INCONSISTENCY"
