"""batchtrack exception hierarchy.

    BatchTrackError
    ├── ProviderError      (provider API call failed: submit, status, results)
    └── PersistenceError   (storage I/O or constraint failure)

Per-message failures are not exceptions: they are recorded on the message row
and reported through the ``on_error`` callback.
"""


class BatchTrackError(Exception):
    """Base class for all batchtrack errors."""


class ProviderError(BatchTrackError):
    """Network or API failure while talking to the batch provider."""

    step = "provider"


class PersistenceError(BatchTrackError):
    """Database access failed."""

    step = "storage"
