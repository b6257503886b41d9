"""Public observability primitives: structured run logging and correlation context."""

from phase_gate.observability.logging import (
    LoggingConfig,
    LogRedactor,
    StructuredLoggingHandle,
    correlation_scope,
    default_log_redactor,
    get_active_logging_handle,
    get_correlation_context,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "LogRedactor",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "correlation_scope",
    "default_log_redactor",
    "get_active_logging_handle",
    "get_correlation_context",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
