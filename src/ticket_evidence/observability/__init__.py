"""Structured logging for the evidence subsystem."""

from ticket_evidence.observability.logging import (
    LoggingConfig,
    StructuredLoggingHandle,
    configure_structlog,
    correlation_scope,
    get_correlation_context,
    get_logger,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "correlation_scope",
    "get_correlation_context",
    "get_logger",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
