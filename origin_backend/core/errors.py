"""
Error taxonomy for the mint pipeline.

Every error carries the HTTP status and short error code the API layer
reports, so services can raise them without knowing about FastAPI.
"""

from typing import Optional


class OriginBackendError(Exception):
    """Base class for all errors raised by the backend services."""

    status_code: int = 500
    error: str = "internal_error"

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class InvalidRequest(OriginBackendError):
    """A required field is missing or malformed. Never retried."""

    status_code = 400
    error = "invalid_request"


class AssetNotFound(OriginBackendError):
    """The referenced filename is not in the session store or not on disk."""

    status_code = 404
    error = "not_found"


class PublishInProgress(OriginBackendError):
    """Another request is already publishing a variant of the same batch."""

    status_code = 409
    error = "publish_in_progress"


class UpstreamFailure(OriginBackendError):
    """The inference endpoint or pinning service returned a non-success."""

    status_code = 500
    error = "upstream_failure"

    def __init__(
        self,
        message: str,
        detail: Optional[str] = None,
        upstream_status: Optional[int] = None,
    ):
        super().__init__(message, detail)
        self.upstream_status = upstream_status


class GenerationFailed(UpstreamFailure):
    error = "generation_failed"


class IpfsUploadFailed(UpstreamFailure):
    error = "ipfs_upload_failed"


class UpstreamTimeout(OriginBackendError):
    """An external call exceeded its configured timeout."""

    status_code = 504
    error = "timeout"


class ChainFailure(OriginBackendError):
    """RPC error or failed transaction submission."""

    status_code = 500
    error = "chain_failure"


class TransactionRejected(ChainFailure):
    """The node refused the transaction or it reverted on-chain."""

    status_code = 409
    error = "transaction_rejected"


class ConfigurationError(OriginBackendError):
    """A signing key, credential or static asset is missing."""

    status_code = 500
    error = "configuration_error"


class Unauthorized(OriginBackendError):
    """The request carried no valid API key."""

    status_code = 403
    error = "unauthorized"
