"""
Error handling utilities with retry logic and failure management
"""
import time
from typing import Callable, Any, Optional, Dict, List
from functools import wraps
from datetime import datetime, timezone

from core.utils.logging_config import get_logger

logger = get_logger(__name__)


class RetryPolicy:
    """Retry policy configuration"""

    def __init__(
        self,
        max_retries: int = 3,
        backoff_seconds: float = 2.0,
        exponential: bool = True
    ):
        """
        Initialize retry policy

        Args:
            max_retries: Maximum number of retry attempts
            backoff_seconds: Base backoff time in seconds
            exponential: Use exponential backoff if True, constant if False
        """
        self.max_retries = max_retries
        self.backoff_seconds = backoff_seconds
        self.exponential = exponential

    def get_backoff_time(self, attempt: int) -> float:
        """
        Calculate backoff time for a given attempt

        Args:
            attempt: Current attempt number (0-indexed)

        Returns:
            Backoff time in seconds
        """
        if self.exponential:
            return self.backoff_seconds * (2 ** attempt)
        return self.backoff_seconds


class InvoiceProcessingError(Exception):
    """Base exception for invoice memory agent errors"""

    def __init__(
        self,
        message: str,
        node: Optional[str] = None,
        recoverable: bool = True,
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.node = node
        self.recoverable = recoverable
        self.details = details or {}
        self.timestamp = datetime.now(timezone.utc).isoformat()


class MemoryLoadError(InvoiceProcessingError):
    """Persisted pattern store could not be read or parsed"""
    pass


class MemoryPersistenceError(InvoiceProcessingError):
    """Pattern store could not be written to durable storage"""

    def __init__(self, message: str, node: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, node=node, recoverable=False, details=details)


def with_retry(
    retry_policy: Optional[RetryPolicy] = None,
    exceptions: tuple = (Exception,),
    on_retry: Optional[Callable] = None
):
    """
    Decorator to add retry logic to a function

    Args:
        retry_policy: RetryPolicy instance, defaults to 3 retries with 2s backoff
        exceptions: Tuple of exceptions to catch and retry
        on_retry: Optional callback function called on each retry

    Usage:
        @with_retry(retry_policy=RetryPolicy(max_retries=3))
        def my_function():
            # function code
            pass
    """
    if retry_policy is None:
        retry_policy = RetryPolicy()

    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs) -> Any:
            last_exception = None

            for attempt in range(retry_policy.max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    last_exception = e

                    if attempt < retry_policy.max_retries:
                        backoff = retry_policy.get_backoff_time(attempt)
                        logger.warning(
                            f"Attempt {attempt + 1}/{retry_policy.max_retries + 1} failed for {func.__name__}: {e}. "
                            f"Retrying in {backoff}s..."
                        )

                        if on_retry:
                            on_retry(attempt, e)

                        time.sleep(backoff)
                    else:
                        logger.error(
                            f"All {retry_policy.max_retries + 1} attempts failed for {func.__name__}: {e}"
                        )

            # All retries exhausted
            raise last_exception

        return wrapper
    return decorator


class ErrorHandler:
    """
    Centralized error handler for the memory agent workflow
    """

    def __init__(self):
        self.error_log: List[Dict[str, Any]] = []

    def handle_error(
        self,
        error: Exception,
        node: str,
        state: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """
        Handle an error that occurred during workflow execution

        Args:
            error: The exception that occurred
            node: Name of the node where error occurred
            state: Current workflow state

        Returns:
            Error information dictionary
        """
        error_info = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'node': node,
            'invoice_id': (state or {}).get('invoice_id'),
            'error_type': type(error).__name__,
            'error_message': str(error),
            'recoverable': getattr(error, 'recoverable', True)
        }

        self.error_log.append(error_info)

        if error_info['recoverable']:
            logger.error(f"Error in {node}: {error}")
        else:
            logger.critical(
                f"Unrecoverable error in {node} for invoice "
                f"{error_info['invoice_id'] or 'unknown'}: {error}"
            )

        return error_info

    def get_error_summary(self) -> Dict[str, Any]:
        """
        Get summary of all errors

        Returns:
            Error summary statistics
        """
        total_errors = len(self.error_log)
        recoverable = sum(1 for e in self.error_log if e.get('recoverable', True))
        unrecoverable = total_errors - recoverable

        return {
            'total_errors': total_errors,
            'recoverable': recoverable,
            'unrecoverable': unrecoverable,
            'errors': self.error_log
        }


# Create singleton instance
error_handler = ErrorHandler()
