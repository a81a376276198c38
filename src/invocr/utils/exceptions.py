"""
InvOcr - Custom Exceptions Module

This module defines the exception classes raised inside the OCR pipeline.
Everything except OcrCancelledError is caught close to where it is raised
and turned into an absent result, so the fallback chain can continue.
"""


class InvOcrError(Exception):
    """Base exception for all InvOcr errors.

    All custom exceptions should inherit from this class to allow
    catching any InvOcr-specific error.
    """

    def __init__(self, message: str, details: str | None = None) -> None:
        """Initialize the exception.

        Args:
            message: Human-readable error message
            details: Optional technical details for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} ({self.details})"
        return self.message


class AssetMissingError(InvOcrError):
    """Raised when a model or dictionary file is absent from the asset store."""

    def __init__(self, asset_path: str, message: str | None = None) -> None:
        """Initialize the exception.

        Args:
            asset_path: Relative asset path that could not be found
            message: Optional custom message
        """
        self.asset_path = asset_path
        msg = message or f"Model asset not found: {asset_path}"
        super().__init__(msg, details=f"asset={asset_path}")


class BackendUnavailableError(InvOcrError):
    """Raised when an inference runtime is not usable on this machine."""

    def __init__(self, backend: str, reason: str | None = None) -> None:
        """Initialize the exception.

        Args:
            backend: Name of the unavailable backend
            reason: Optional reason (missing runtime, disabled, ...)
        """
        self.backend = backend
        self.reason = reason
        msg = f"Inference backend unavailable: {backend}"
        if reason:
            msg += f" - {reason}"
        super().__init__(msg)


class DecodeFailureError(InvOcrError):
    """Raised when a model output tensor cannot be decoded."""

    def __init__(self, reason: str, shape: tuple[int, ...] | None = None) -> None:
        self.reason = reason
        self.shape = shape
        details = f"shape={list(shape)}" if shape is not None else None
        super().__init__(f"Cannot decode model output: {reason}", details=details)


class SecurityViolationError(InvOcrError):
    """Raised on path traversal or an untrusted runtime origin.

    A backend that sees this error disables itself for the rest of the process.
    """

    def __init__(self, path: str, reason: str) -> None:
        """Initialize the exception.

        Args:
            path: The offending path or module origin
            reason: What check failed
        """
        self.path = path
        self.reason = reason
        super().__init__(f"Security violation: {reason}", details=f"path={path}")


class OcrCancelledError(InvOcrError):
    """Raised when a pipeline run observes its cancellation signal.

    This is the only pipeline error that reaches the caller.
    """

    def __init__(self, stage: str | None = None) -> None:
        self.stage = stage
        msg = "OCR run cancelled"
        if stage:
            msg += f" during {stage}"
        super().__init__(msg)


# Exception hierarchy summary:
# InvOcrError (base)
# ├── AssetMissingError
# ├── BackendUnavailableError
# ├── DecodeFailureError
# ├── SecurityViolationError
# └── OcrCancelledError
