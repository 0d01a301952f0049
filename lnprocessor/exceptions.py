"""Error taxonomy for lnprocessor.

Every public operation fails with exactly one of four errors:

- ConfigError: provider cannot be constructed (fatal at startup)
- InvoiceError: the invoice or invoice parameters are invalid (not retryable)
- ProcessorError: the backend failed internally or answered garbage (not retryable)
- NodeConnectionError: the backend could not be reached (retryable)

Backend-native exceptions never cross the provider boundary; they are
wrapped into one of these with ``raise ... from e``.

Usage:
    from lnprocessor.exceptions import InvoiceError

    try:
        invoice = parse_invoice(raw)
    except InvoiceError as e:
        logger.warning("invoice_rejected", error=str(e), context=e.context)
"""

from __future__ import annotations

from typing import Any


class LightningError(Exception):
    """Base exception for all lnprocessor errors.

    Attributes:
        message: Human-readable error message
        context: Additional context for debugging (dict)
        original_error: Original exception if wrapped
    """

    retryable: bool = False

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

    @property
    def kind(self) -> str:
        """Taxonomy case name, safe to use as a diagnostic payload."""
        return type(self).__name__

    def __str__(self) -> str:
        base = self.message
        if self.context:
            ctx_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base = f"{base} ({ctx_str})"
        if self.original_error:
            base = f"{base} [caused by: {type(self.original_error).__name__}]"
        return base

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, context={self.context!r})"


class ConfigError(LightningError):
    """Raised when provider configuration is missing or malformed."""

    def __init__(
        self,
        message: str,
        *,
        setting: str | None = None,
        expected: str | None = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context") or {}
        if setting:
            context["setting"] = setting
        if expected:
            context["expected"] = expected
        kwargs["context"] = context
        super().__init__(message, **kwargs)


class InvoiceError(LightningError):
    """Raised when an invoice string or invoice parameters are invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        context = kwargs.get("context") or {}
        if field:
            context["field"] = field
        if value is not None:
            context["value"] = str(value)[:100]
        kwargs["context"] = context
        super().__init__(message, **kwargs)


class ProcessorError(LightningError):
    """Raised on backend-internal failures distinct from connectivity."""

    def __init__(self, message: str, *, provider: str | None = None, **kwargs: Any) -> None:
        context = kwargs.get("context") or {}
        if provider:
            context["provider"] = provider
        kwargs["context"] = context
        super().__init__(message, **kwargs)


class NodeConnectionError(LightningError):
    """Raised when the backend cannot be reached. Callers may retry later."""

    retryable = True

    def __init__(self, message: str, *, provider: str | None = None, **kwargs: Any) -> None:
        context = kwargs.get("context") or {}
        if provider:
            context["provider"] = provider
        kwargs["context"] = context
        super().__init__(message, **kwargs)
