"""Utility functions and helpers.

- async_helpers: exceptions, retry, timeouts, cancellation
- security: secret redaction
- logging: structured logging with secret sanitization
- metrics: in-process repair metrics
"""

from repair_loop.utils.async_helpers import (
    CancellationToken,
    CompletionError,
    RateLimitError,
    RepairLoopError,
    SessionStateError,
    TimeoutError,
    create_retry,
    run_cancellable,
    with_timeout,
)
from repair_loop.utils.logging import (
    LogFormat,
    LogLevel,
    bind_context,
    clear_context,
    configure_from_config,
    configure_logging,
    unbind_context,
)
from repair_loop.utils.metrics import (
    Counter,
    Histogram,
    MetricsRegistry,
    Timer,
    get_metrics,
)
from repair_loop.utils.security import (
    RedactionError,
    SecretPattern,
    SecretRedactor,
    SecurityError,
)

__all__ = [
    # Errors and async helpers
    "CancellationToken",
    "CompletionError",
    "RateLimitError",
    "RepairLoopError",
    "SessionStateError",
    "TimeoutError",
    "create_retry",
    "run_cancellable",
    "with_timeout",
    # Logging
    "LogFormat",
    "LogLevel",
    "bind_context",
    "clear_context",
    "configure_from_config",
    "configure_logging",
    "unbind_context",
    # Metrics
    "Counter",
    "Histogram",
    "MetricsRegistry",
    "Timer",
    "get_metrics",
    # Security
    "RedactionError",
    "SecretPattern",
    "SecretRedactor",
    "SecurityError",
]
