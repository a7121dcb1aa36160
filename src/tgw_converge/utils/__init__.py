"""Utility modules for logging, AWS client management, errors and retries."""

from tgw_converge.utils.aws_client import AWSClientManager
from tgw_converge.utils.retry import (
    RetryStrategy,
    RetryableError,
    NotYetVisibleError,
    NonRetryableError,
    retry_until,
)
from tgw_converge.utils.errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorContext,
    ConvergenceError,
    ConfigurationError,
    RequestError,
    UnexpectedStateError,
    UnhandledStateError,
    WaitTimeoutError,
    VisibilityTimeoutError,
    ConflictingStatesError,
    ResourceNotFoundError,
    ErrorHandler,
    error_handler,
    is_aws_error,
)
from tgw_converge.utils.logging import get_logger, setup_logging, ContextFilter, LogContext

__all__ = [
    # AWS Client
    'AWSClientManager',

    # Retry
    'RetryStrategy',
    'RetryableError',
    'NotYetVisibleError',
    'NonRetryableError',
    'retry_until',

    # Errors
    'ErrorCategory',
    'ErrorSeverity',
    'ErrorContext',
    'ConvergenceError',
    'ConfigurationError',
    'RequestError',
    'UnexpectedStateError',
    'UnhandledStateError',
    'WaitTimeoutError',
    'VisibilityTimeoutError',
    'ConflictingStatesError',
    'ResourceNotFoundError',
    'ErrorHandler',
    'error_handler',
    'is_aws_error',

    # Logging
    'get_logger',
    'setup_logging',
    'ContextFilter',
    'LogContext',
]
