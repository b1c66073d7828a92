"""Error types raised by the drift detector."""


class DriftError(RuntimeError):
    """Base class for drift detection errors."""


class MissingReferenceError(DriftError):
    """Raised when a hierarchy node references a parent that does not exist."""


class AssetInventoryError(DriftError):
    """Raised when the Cloud Asset Inventory cannot be queried or parsed."""


class StorageError(DriftError):
    """Raised when a GCS bucket cannot be listed or an object downloaded."""


class TerraformStateError(DriftError):
    """Raised when a Terraform state file cannot be decoded."""


class DriftignoreError(DriftError):
    """Raised when an existing driftignore file cannot be read."""


class WorkerPoolError(DriftError):
    """Raised when a task submitted to a worker pool fails."""


class WorkerPoolStoppedError(WorkerPoolError):
    """Raised when a task is submitted to a pool that no longer accepts work."""


class DriftDetectionError(DriftError):
    """Raised when a drift detection run cannot produce a report."""
