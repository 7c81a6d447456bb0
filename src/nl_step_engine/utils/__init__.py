"""
Utilities module - Common utility functions.
"""

from nl_step_engine.utils.logging import setup_logging, get_logger
from nl_step_engine.utils.retry import retry, retry_async, poll_until, RetryConfig

__all__ = [
    "setup_logging",
    "get_logger",
    "retry",
    "retry_async",
    "poll_until",
    "RetryConfig",
]
