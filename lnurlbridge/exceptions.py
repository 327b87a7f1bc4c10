"""Exception hierarchy for lnurlbridge.

Every error raised by the flow engine derives from :class:`LnurlBridgeError`
and carries structured context for logging. The HTTP layer maps the classes
below to status codes in a single place (``lnurlbridge.api.errors``).

Usage:
    from lnurlbridge.exceptions import ValidationError

    try:
        bounds.check(amount_msat)
    except ValidationError as e:
        logger.warning("withdraw_rejected", reason=e.message, context=e.context)
"""

from __future__ import annotations

from typing import Any


class LnurlBridgeError(Exception):
    """Base exception for all lnurlbridge errors.

    Attributes:
        message: Human-readable error message, sent to callers as ``reason``
        context: Additional context for debugging (dict)
        original_error: Original exception if wrapped
    """

    def __init__(
        self,
        message: str,
        *,
        context: dict[str, Any] | None = None,
        original_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Format exception with context for logging."""
        base = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base = f"{base} ({ctx_str})"
        if self.original_error:
            base = f"{base} [caused by: {type(self.original_error).__name__}]"
        return base

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, context={self.context!r})"


# =============================================================================
# Validation & Input Errors
# =============================================================================


class ValidationError(LnurlBridgeError):
    """Raised when caller input is rejected.

    Covers unparsable identifiers, invoices without an amount and amounts
    outside the advertised bounds. Never retried.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        constraint: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if field:
            context["field"] = field
        if value is not None:
            context["value"] = str(value)[:100]
        if constraint:
            context["constraint"] = constraint
        kwargs["context"] = context
        super().__init__(message, **kwargs)


class TokenRejectedError(ValidationError):
    """Raised when a challenge token is unknown, expired or already consumed."""


class SignatureVerificationError(LnurlBridgeError):
    """Raised when the node reports that an auth signature does not verify."""


class ConfigurationError(LnurlBridgeError):
    """Raised when settings are missing or inconsistent at startup."""

    def __init__(
        self,
        message: str,
        *,
        setting: str | None = None,
        expected: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if setting:
            context["setting"] = setting
        if expected:
            context["expected"] = expected
        kwargs["context"] = context
        super().__init__(message, **kwargs)


# =============================================================================
# Node Integration Errors
# =============================================================================


class IntegrationError(LnurlBridgeError):
    """Base class for external service integration errors."""


class NodeRpcError(IntegrationError):
    """Raised when a call on the node's RPC boundary fails.

    ``message`` is the node's own error text so it can be surfaced verbatim.
    """

    def __init__(
        self,
        message: str,
        *,
        method: str | None = None,
        code: int | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if method:
            context["method"] = method
        if code is not None:
            context["code"] = code
        kwargs["context"] = context
        super().__init__(message, **kwargs)
        self.method = method
        self.code = code


class NodeRpcConnectionError(NodeRpcError):
    """Raised when the node's RPC socket cannot be reached."""


# =============================================================================
# Payment Execution Errors
# =============================================================================


class PaymentExecutionError(LnurlBridgeError):
    """Raised inside a payment worker when paying a withdrawal invoice fails.

    Only ever logged and published as an event, never returned to the
    withdraw caller.
    """


class PaymentQueueFullError(LnurlBridgeError):
    """Raised when the payment queue cannot take another accepted withdrawal."""


# =============================================================================
# Client Errors
# =============================================================================


class ClientTransportError(LnurlBridgeError):
    """Raised by the client driver when an HTTP round-trip fails."""

    def __init__(
        self,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context", {})
        if url:
            context["url"] = url
        if status_code is not None:
            context["status_code"] = status_code
        kwargs["context"] = context
        super().__init__(message, **kwargs)
        self.status_code = status_code
