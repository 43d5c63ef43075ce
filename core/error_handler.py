"""
Error Handler for the Ahmo Wall board core

Provides centralized error handling with categorization, logging, and user-friendly notifications.
Handles permission, not-found, validation, network and storage errors with appropriate responses.
"""

import logging
import traceback
from enum import Enum
from typing import Optional, Callable
from dataclasses import dataclass


logger = logging.getLogger(__name__)


class ErrorCategory(Enum):
    """Error categories for classification."""
    PERMISSION = "permission"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    NETWORK = "network"
    STORAGE = "storage"
    UNKNOWN = "unknown"


class ErrorSeverity(Enum):
    """Error severity levels."""
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Context information for an error."""
    category: ErrorCategory
    severity: ErrorSeverity
    operation: str
    user_message: str
    technical_details: str
    board_id: Optional[str] = None
    post_id: Optional[str] = None


# Custom Exception Classes

class BoardError(Exception):
    """Base exception for board core errors."""

    def __init__(self, message: str, category: ErrorCategory = ErrorCategory.UNKNOWN):
        super().__init__(message)
        self.category = category


class PermissionDeniedError(BoardError):
    """The requester is not allowed to perform the operation.

    Raised both by the store's own authorization layer and by the core's
    authorship/ownership checks.
    """

    def __init__(self, message: str, reason: Optional[str] = None):
        super().__init__(message, ErrorCategory.PERMISSION)
        self.reason = reason


class NotFoundError(BoardError):
    """A board, post or other document does not exist."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.NOT_FOUND)


class ValidationError(BoardError):
    """Input rejected before any network call."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.VALIDATION)


class NetworkFailure(BoardError):
    """The remote store or object storage could not be reached."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.NETWORK)


class StorageError(BoardError):
    """The store accepted the request but failed to apply it."""

    def __init__(self, message: str):
        super().__init__(message, ErrorCategory.STORAGE)


class FileTooLargeError(ValidationError):
    """Upload exceeds the configured attachment size."""
    pass


class ErrorHandler:
    """
    Global error handler for the board core.

    Provides centralized error handling with:
    - Error categorization (permission, not found, validation, network, storage)
    - Severity classification
    - User-friendly error messages
    - Detailed logging for debugging
    - Notification callbacks for UI integration

    Usage:
        error_handler = ErrorHandler()
        error_handler.set_notification_callback(view.show_toast)

        try:
            # Some operation
            pass
        except BoardError as e:
            error_handler.handle_error(e, "operation_name")
    """

    def __init__(self):
        """Initialize error handler."""
        self._notification_callback: Optional[Callable] = None
        self._error_count = 0

    def set_notification_callback(self, callback: Callable):
        """
        Set callback for displaying notifications to user.

        Args:
            callback: Function(title: str, content: str, severity: ErrorSeverity)
        """
        self._notification_callback = callback

    def handle_error(
        self,
        error: Exception,
        context: str,
        board_id: Optional[str] = None,
        post_id: Optional[str] = None,
        show_notification: bool = True
    ) -> ErrorContext:
        """
        Handle an error with appropriate categorization and response.

        Args:
            error: The exception that occurred
            context: Description of the operation that failed
            board_id: Optional board ID if error relates to a board
            post_id: Optional post ID if error relates to a post
            show_notification: Whether to show user notification (default: True)

        Returns:
            ErrorContext with categorized error information
        """
        self._error_count += 1

        if isinstance(error, BoardError):
            category = error.category
        else:
            category = self._categorize_error(error)

        severity = self._determine_severity(error, category)
        user_message = self._generate_user_message(error, category, context)
        technical_details = self._get_technical_details(error)

        error_context = ErrorContext(
            category=category,
            severity=severity,
            operation=context,
            user_message=user_message,
            technical_details=technical_details,
            board_id=board_id,
            post_id=post_id
        )

        self._log_error(error_context)

        if show_notification and self._notification_callback:
            self._show_notification(error_context)

        return error_context

    def _categorize_error(self, error: Exception) -> ErrorCategory:
        """
        Categorize a foreign error based on its type and message.

        Args:
            error: The exception to categorize

        Returns:
            ErrorCategory
        """
        error_type = type(error).__name__.lower()
        error_msg = str(error).lower()

        if any(keyword in error_type or keyword in error_msg for keyword in [
            'permission', 'denied', 'forbidden', 'unauthorized'
        ]):
            return ErrorCategory.PERMISSION

        if any(keyword in error_type or keyword in error_msg for keyword in [
            'connection', 'network', 'socket', 'timeout', 'unreachable'
        ]):
            return ErrorCategory.NETWORK

        if any(keyword in error_type or keyword in error_msg for keyword in [
            'database', 'storage', 'disk', 'sqlite', 'integrity'
        ]):
            return ErrorCategory.STORAGE

        return ErrorCategory.UNKNOWN

    def _determine_severity(
        self,
        error: Exception,
        category: ErrorCategory
    ) -> ErrorSeverity:
        """
        Determine the severity of an error.

        Args:
            error: The exception
            category: Error category

        Returns:
            ErrorSeverity
        """
        # Rejected input is the user's to fix
        if category == ErrorCategory.VALIDATION:
            return ErrorSeverity.WARNING

        if category in (ErrorCategory.PERMISSION, ErrorCategory.NOT_FOUND):
            return ErrorSeverity.WARNING

        # Network errors are usually transient
        if category == ErrorCategory.NETWORK:
            return ErrorSeverity.WARNING

        if category == ErrorCategory.STORAGE:
            return ErrorSeverity.ERROR

        return ErrorSeverity.ERROR

    def _generate_user_message(
        self,
        error: Exception,
        category: ErrorCategory,
        context: str
    ) -> str:
        """
        Generate a user-friendly error message.

        Args:
            error: The exception
            category: Error category
            context: Operation context

        Returns:
            User-friendly error message
        """
        if category == ErrorCategory.PERMISSION:
            return self._generate_permission_message(error, context)
        elif category == ErrorCategory.NOT_FOUND:
            return f"{error} It may have been deleted."
        elif category == ErrorCategory.VALIDATION:
            return str(error)
        elif category == ErrorCategory.NETWORK:
            return "Could not reach the board service. Please check your connection and try again."
        elif category == ErrorCategory.STORAGE:
            return f"The board service failed to save your change during {context}."
        else:
            return f"An error occurred during {context}. Please try again."

    def _generate_permission_message(self, error: Exception, context: str) -> str:
        """Generate user message for permission errors."""
        reason = getattr(error, 'reason', None)
        if reason == "private":
            return "This board is private."
        if reason == "not_author":
            return "Only the author or the board owner can change this."
        if reason == "not_owner":
            return "Only the board owner can do this."
        if reason == "view_only":
            return "Guests can only view this board."
        return (
            f"Permission denied during {context}: your role may be insufficient, "
            "or the board's access rules do not allow guests to do this."
        )

    def _get_technical_details(self, error: Exception) -> str:
        """
        Get technical details for logging.

        Args:
            error: The exception

        Returns:
            Technical details string
        """
        details = [
            f"Exception Type: {type(error).__name__}",
            f"Message: {str(error)}",
            "Traceback:",
            traceback.format_exc()
        ]
        return "\n".join(details)

    def _log_error(self, error_context: ErrorContext):
        """
        Log error with appropriate level.

        Args:
            error_context: Error context information
        """
        log_message = (
            f"[{error_context.category.value.upper()}] "
            f"{error_context.operation}: {error_context.user_message}"
        )

        extra_info = []
        if error_context.board_id:
            extra_info.append(f"board_id={error_context.board_id}")
        if error_context.post_id:
            extra_info.append(f"post_id={error_context.post_id}")

        if extra_info:
            log_message += f" ({', '.join(extra_info)})"

        if error_context.severity == ErrorSeverity.CRITICAL:
            logger.critical(log_message)
            logger.critical(f"Technical details:\n{error_context.technical_details}")
        elif error_context.severity == ErrorSeverity.ERROR:
            logger.error(log_message)
            logger.debug(f"Technical details:\n{error_context.technical_details}")
        elif error_context.severity == ErrorSeverity.WARNING:
            logger.warning(log_message)
            logger.debug(f"Technical details:\n{error_context.technical_details}")
        else:
            logger.info(log_message)

    def _show_notification(self, error_context: ErrorContext):
        """
        Show notification to user.

        Args:
            error_context: Error context information
        """
        if not self._notification_callback:
            return

        try:
            title_map = {
                ErrorCategory.PERMISSION: "Permission Denied",
                ErrorCategory.NOT_FOUND: "Not Found",
                ErrorCategory.VALIDATION: "Invalid Input",
                ErrorCategory.NETWORK: "Network Error",
                ErrorCategory.STORAGE: "Storage Error",
                ErrorCategory.UNKNOWN: "Error"
            }

            title = title_map.get(error_context.category, "Error")

            self._notification_callback(
                title,
                error_context.user_message,
                error_context.severity
            )

        except Exception as e:
            logger.error(f"Failed to show notification: {e}")

    def get_error_count(self) -> int:
        """
        Get total number of errors handled.

        Returns:
            Error count
        """
        return self._error_count

    def reset_error_count(self):
        """Reset error counter."""
        self._error_count = 0


# Global error handler instance
_global_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """
    Get the global error handler instance.

    Returns:
        Global ErrorHandler instance
    """
    global _global_error_handler
    if _global_error_handler is None:
        _global_error_handler = ErrorHandler()
    return _global_error_handler


def set_error_handler(handler: ErrorHandler):
    """
    Set the global error handler instance.

    Args:
        handler: ErrorHandler instance to use globally
    """
    global _global_error_handler
    _global_error_handler = handler
