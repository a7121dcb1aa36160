"""Errors raised while waiting for resources to converge.

Every failure surfaces as a ConvergenceError subclass carrying the resource
it concerns, so callers can tell a timeout from a resource that went into
an unexpected state or a request that EC2 rejected.
"""

import logging
from typing import Optional, Dict, Any, List, Iterable
from enum import Enum
from dataclasses import asdict, dataclass, replace
from botocore.exceptions import (
    ClientError,
    EndpointConnectionError,
    NoCredentialsError,
    PartialCredentialsError,
)
from tgw_converge.utils.logging import get_logger

logger = get_logger(__name__)


class ErrorCategory(Enum):
    """What kind of failure ended the wait or request."""
    CONFIGURATION = "configuration"
    AWS = "aws"
    NETWORK = "network"
    CREDENTIAL = "credential"
    PERMISSION = "permission"
    REQUEST = "request"
    UNEXPECTED_STATE = "unexpected_state"
    TIMEOUT = "timeout"
    CONFLICTING_STATES = "conflicting_states"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    CRITICAL = "critical"  # nothing else can run, e.g. no credentials
    ERROR = "error"  # this resource failed to converge
    WARNING = "warning"  # tolerated by the caller, e.g. a sweep timeout


@dataclass
class ErrorContext:
    """The resource and call an error refers to."""
    resource_id: Optional[str] = None
    resource_type: Optional[str] = None
    operation: Optional[str] = None
    aws_operation: Optional[str] = None
    request_id: Optional[str] = None

    def describe(self) -> str:
        """Short "Type (id)" label used in error messages."""
        if self.resource_type and self.resource_id:
            return f"{self.resource_type} ({self.resource_id})"
        return self.resource_type or self.resource_id or "resource"


class ConvergenceError(Exception):
    """Base class for everything tgw-converge raises.

    Args:
        message: Human-readable error message
        category: Error category
        severity: Error severity
        context: Resource and call the error refers to
        cause: Underlying exception, usually a botocore error
        suggestions: Things the user can try
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNKNOWN,
        severity: ErrorSeverity = ErrorSeverity.ERROR,
        context: Optional[ErrorContext] = None,
        cause: Optional[Exception] = None,
        suggestions: Optional[List[str]] = None
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.context = context or ErrorContext()
        self.cause = cause
        self.suggestions = suggestions or []

    def to_user_message(self) -> str:
        """Multi-line message for the terminal.

        The cause is only repeated when the message does not already quote
        it, which is the case for AWS errors.
        """
        marker = "⚠️ " if self.severity == ErrorSeverity.WARNING else "❌"
        lines = [f"{marker} {self.severity.value.upper()}: {self.message}"]

        if self.context.resource_id or self.context.resource_type:
            lines.append(f"   Resource: {self.context.describe()}")
        if self.context.operation:
            lines.append(f"   Operation: {self.context.operation}")
        if self.context.request_id:
            lines.append(f"   Request ID: {self.context.request_id}")
        if self.cause is not None and str(self.cause) not in self.message:
            lines.append(f"   Cause: {self.cause}")

        if self.suggestions:
            lines.append("\n💡 Suggested fixes:")
            lines.extend(f"   {i}. {suggestion}" for i, suggestion in enumerate(self.suggestions, 1))

        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Flat representation for the JSON log."""
        return {
            'error': type(self).__name__,
            'message': self.message,
            'category': self.category.value,
            'severity': self.severity.value,
            **{key: value for key, value in asdict(self.context).items() if value is not None},
            'cause': repr(self.cause) if self.cause is not None else None,
            'suggestions': self.suggestions,
        }


class ConfigurationError(ConvergenceError):
    """Error in configuration file, settings or wait definitions."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.CRITICAL,
            **kwargs
        )


class RequestError(ConvergenceError):
    """The describe/list or mutate call itself failed."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.REQUEST, **kwargs):
        super().__init__(
            message,
            category=category,
            severity=kwargs.pop('severity', ErrorSeverity.ERROR),
            **kwargs
        )


class UnexpectedStateError(ConvergenceError):
    """Observed label is neither pending nor target."""

    def __init__(
        self,
        message: str,
        state: str = '',
        expected: Iterable[str] = (),
        status_code: Optional[str] = None,
        status_message: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            category=ErrorCategory.UNEXPECTED_STATE,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )
        self.state = state
        self.expected = sorted(expected)
        self.status_code = status_code
        self.status_message = status_message


class UnhandledStateError(UnexpectedStateError):
    """A sub-resource reported a label the aggregator does not know."""


class WaitTimeoutError(ConvergenceError):
    """Resource was still pending when the timeout elapsed."""

    def __init__(self, message: str, timeout: float = 0.0, last_state: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )
        self.timeout = timeout
        self.last_state = last_state


class VisibilityTimeoutError(WaitTimeoutError):
    """A mutation never became visible through a list/search API."""

    def __init__(self, message: str, condition: str = '', **kwargs):
        super().__init__(message, **kwargs)
        self.condition = condition


class ConflictingStatesError(ConvergenceError):
    """Sub-resources settled on different terminal labels."""

    def __init__(self, message: str, states: Optional[Dict[str, str]] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFLICTING_STATES,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )
        self.states = dict(states or {})


class ResourceNotFoundError(ConvergenceError):
    """Resource stayed absent for longer than the wait tolerates."""

    def __init__(self, message: str, retries: int = 0, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.NOT_FOUND,
            severity=ErrorSeverity.ERROR,
            **kwargs
        )
        self.retries = retries


def aws_error_code(error: Exception) -> str:
    """Return the AWS error code of a ClientError, or an empty string."""
    if isinstance(error, ClientError):
        return error.response.get('Error', {}).get('Code', '')
    return ''


def is_aws_error(error: Optional[Exception], code: str, message: str = '') -> bool:
    """Check whether an exception is a ClientError with the given code.

    Args:
        error: Exception to inspect (None is never a match)
        code: AWS error code, e.g. 'InvalidTransitGatewayID.NotFound'
        message: Optional substring the error message must contain

    Returns:
        True when code (and message, if given) match
    """
    if not isinstance(error, ClientError):
        return False
    if aws_error_code(error) != code:
        return False
    if message:
        return message in error.response.get('Error', {}).get('Message', '')
    return True


class ErrorHandler:
    """Turns botocore failures into categorised RequestErrors."""

    # AWS error code -> category, summary and suggestions
    AWS_ERROR_MAPPING = {
        'InvalidClientTokenId': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'AWS credentials are invalid or expired',
            'suggestions': [
                'Verify credentials using: aws sts get-caller-identity',
                'Pass --profile to use a different named profile',
            ]
        },
        'AuthFailure': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'AWS was not able to validate the provided credentials',
            'suggestions': [
                'Verify credentials using: aws sts get-caller-identity',
                'Check that the system clock is accurate',
            ]
        },
        'ExpiredToken': {
            'category': ErrorCategory.CREDENTIAL,
            'message': 'AWS session token has expired',
            'suggestions': ['Refresh the session credentials and run the command again']
        },
        'UnauthorizedOperation': {
            'category': ErrorCategory.PERMISSION,
            'message': 'Operation not authorized',
            'suggestions': [
                'Grant the ec2:*TransitGateway* action named in the error to this identity',
                'Check that the resource is in the region you are talking to',
            ]
        },
        'AccessDeniedException': {
            'category': ErrorCategory.PERMISSION,
            'message': 'Access denied',
            'suggestions': [
                'Grant the workspaces:* action named in the error to this identity',
                'Review service control policies if the account is in an AWS Organization',
            ]
        },
        'RequestLimitExceeded': {
            'category': ErrorCategory.AWS,
            'message': 'API request rate exceeded',
            'suggestions': [
                'Raise polling.interval in tgw-converge.yaml',
                'Run fewer waits against the same region at once',
            ]
        },
        'InvalidParameterValue': {
            'category': ErrorCategory.VALIDATION,
            'message': 'Invalid parameter value',
            'suggestions': ['Check the identifier, e.g. tgw-..., tgw-rtb-... or tgw-attach-...']
        },
        'MissingParameter': {
            'category': ErrorCategory.VALIDATION,
            'message': 'Required parameter missing',
            'suggestions': ['Pass every identifier the resource kind needs']
        },
        'IncorrectState': {
            'category': ErrorCategory.UNEXPECTED_STATE,
            'message': 'Resource is not in a state that allows this operation',
            'suggestions': [
                'Wait for the resource to finish its current transition',
                'Run: tgw-converge describe <kind> <id>',
            ]
        },
        'RequestTimeout': {
            'category': ErrorCategory.NETWORK,
            'message': 'Request timed out',
            'suggestions': ['Check that the regional EC2 endpoint is reachable']
        },
        'ServiceUnavailable': {
            'category': ErrorCategory.NETWORK,
            'message': 'AWS service temporarily unavailable',
            'suggestions': ['Retry in a few minutes', 'Check the AWS Health Dashboard for the region']
        },
    }

    NOT_FOUND = {
        'category': ErrorCategory.NOT_FOUND,
        'message': 'Resource not found',
        'suggestions': [
            'Check that the identifier belongs to this account and region',
            'The resource may have been deleted outside tgw-converge',
        ]
    }

    def handle_exception(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None,
        action: str = "reading"
    ) -> ConvergenceError:
        """Convert an exception into a ConvergenceError.

        Args:
            error: The exception to convert
            context: Resource and call the error refers to
            action: Verb for the message prefix, e.g. "deleting"

        Returns:
            The error itself when it already is a ConvergenceError, otherwise
            a categorised RequestError wrapping it
        """
        # Pollers reuse one context for every call
        context = replace(context) if context else ErrorContext()

        if isinstance(error, ConvergenceError):
            return error

        if isinstance(error, ClientError):
            return self._handle_aws_error(error, context, action)

        if isinstance(error, (NoCredentialsError, PartialCredentialsError)):
            return RequestError(
                message='No usable AWS credentials found',
                category=ErrorCategory.CREDENTIAL,
                severity=ErrorSeverity.CRITICAL,
                context=context,
                cause=error,
                suggestions=[
                    'Configure AWS credentials using: aws configure',
                    'Specify a profile with --profile',
                ]
            )

        if isinstance(error, (EndpointConnectionError, ConnectionError, TimeoutError)):
            return RequestError(
                message=f'Network error {action} {context.describe()}: {error}',
                category=ErrorCategory.NETWORK,
                context=context,
                cause=error,
                suggestions=['Check that the regional EC2 endpoint is reachable']
            )

        return RequestError(
            message=f'error {action} {context.describe()}: {error}',
            category=ErrorCategory.UNKNOWN,
            context=context,
            cause=error,
        )

    def _handle_aws_error(self, error: ClientError, context: ErrorContext, action: str) -> RequestError:
        details = error.response.get('Error', {})
        error_code = details.get('Code', 'Unknown')
        error_message = details.get('Message', str(error))

        context.request_id = error.response.get('ResponseMetadata', {}).get('RequestId')
        if context.aws_operation is None:
            context.aws_operation = getattr(error, 'operation_name', None)

        error_info = self.AWS_ERROR_MAPPING.get(error_code)
        if error_info is None and error_code.endswith('.NotFound'):
            error_info = self.NOT_FOUND

        prefix = f"error {action} {context.describe()}" if context.resource_type else "AWS request failed"

        if error_info is None:
            return RequestError(
                message=f"{prefix}: AWS Error ({error_code}): {error_message}",
                category=ErrorCategory.AWS,
                context=context,
                cause=error,
                suggestions=[
                    'Check AWS documentation for this error code',
                    f'AWS Request ID: {context.request_id}',
                ]
            )

        return RequestError(
            message=f"{prefix}: {error_info['message']}: {error_message}",
            category=error_info['category'],
            context=context,
            cause=error,
            suggestions=list(error_info['suggestions'])
        )

    def log_error(self, error: ConvergenceError):
        """Log the error at a level matching its severity, details at DEBUG."""
        level = logging.WARNING if error.severity == ErrorSeverity.WARNING else logging.ERROR
        logger.log(level, error.message)
        logger.debug(f"Error details: {error.to_dict()}")


error_handler = ErrorHandler()
