from __future__ import annotations


class IntakeError(Exception):
    """Base class for order intake failures."""


class FetchError(IntakeError):
    """Raised when the message source is unreachable or rejects the request."""


class ClassificationError(IntakeError):
    """Raised when the model call fails or returns an unusable payload."""


class SinkError(IntakeError):
    """Raised when the ledger or alert channel rejects a write."""


class ConfigurationMissing(IntakeError):
    """Raised when an operation needs a credential that was never configured."""


class LedgerNotConfigured(ConfigurationMissing):
    pass
