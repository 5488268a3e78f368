"""Service error hierarchy for provider adapters and the job queue.

This module defines the exception hierarchy for service-level errors:
- SakugaError: Base for all service errors (carries HTTP status and error code)
- ProviderError: Failures raised by provider adapters
- NotFoundError: Unknown job, history entry or provider
- InvalidJobStateError: Queue operation not allowed in the job's current status
- InvalidRequestError: Request exceeds a configured limit
"""


class SakugaError(Exception):
    """Base exception for all service errors."""

    status_code: int = 500
    code: str = "INTERNAL_ERROR"


# Provider-specific errors
class ProviderError(SakugaError):
    """Base exception for provider adapter failures."""

    status_code = 502
    code = "PROVIDER_ERROR"

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


class CredentialMissingError(ProviderError):
    """No usable API key for the provider. Raised before any network call."""

    status_code = 400
    code = "CREDENTIAL_MISSING"


class VendorError(ProviderError):
    """Upstream call failed or returned a non-success status.

    The message is the vendor's own message when one is available.
    """

    code = "VENDOR_ERROR"


class GenerationTimeoutError(VendorError):
    """Submit-then-poll vendor did not finish within the attempt bound."""

    code = "GENERATION_TIMEOUT"


class EmptyResultError(ProviderError):
    """Vendor reported success but returned zero usable images."""

    code = "EMPTY_RESULT"


class UnsupportedOperationError(ProviderError):
    """Provider does not offer the requested capability (edit, inpaint, upscale)."""

    status_code = 400
    code = "UNSUPPORTED_OPERATION"


# Lookup errors
class NotFoundError(SakugaError):
    """Operation on an unknown job, history entry or provider."""

    status_code = 404
    code = "NOT_FOUND"


class UnknownProviderError(NotFoundError):
    """No adapter is registered under the requested provider name.

    Distinct from CredentialMissingError, which means the provider exists but
    has no key.
    """

    code = "UNKNOWN_PROVIDER"

    def __init__(self, message: str, provider: str | None = None):
        super().__init__(message)
        self.provider = provider


# Queue errors
class InvalidJobStateError(SakugaError):
    """Queue operation attempted from a status that does not allow it."""

    status_code = 400
    code = "INVALID_JOB_STATE"


# Request errors
class InvalidRequestError(SakugaError):
    """Request is well-formed but violates a configured limit."""

    status_code = 400
    code = "VALIDATION_ERROR"
