"""
Tests for the error handler.

Tests categorization, severity, user messages and the notification callback.
"""

import pytest

from core.error_handler import (
    ErrorCategory,
    ErrorHandler,
    ErrorSeverity,
    FileTooLargeError,
    NetworkFailure,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
    get_error_handler,
    set_error_handler,
)


@pytest.fixture
def handler():
    return ErrorHandler()


class TestErrorHandler:
    """Test ErrorHandler functionality."""

    @pytest.mark.parametrize("error, category, severity", [
        (PermissionDeniedError("no"), ErrorCategory.PERMISSION, ErrorSeverity.WARNING),
        (NotFoundError("Post 1 was not found."), ErrorCategory.NOT_FOUND, ErrorSeverity.WARNING),
        (ValidationError("bad"), ErrorCategory.VALIDATION, ErrorSeverity.WARNING),
        (FileTooLargeError("big"), ErrorCategory.VALIDATION, ErrorSeverity.WARNING),
        (NetworkFailure("down"), ErrorCategory.NETWORK, ErrorSeverity.WARNING),
        (StorageError("disk"), ErrorCategory.STORAGE, ErrorSeverity.ERROR),
    ])
    def test_board_errors(self, handler, error, category, severity):
        context = handler.handle_error(error, "create post", board_id="b1", post_id="p1")

        assert context.category is category
        assert context.severity is severity
        assert context.board_id == "b1"
        assert context.post_id == "p1"

    @pytest.mark.parametrize("error, category", [
        (OSError("connection reset"), ErrorCategory.NETWORK),
        (RuntimeError("sqlite database is locked"), ErrorCategory.STORAGE),
        (RuntimeError("access denied"), ErrorCategory.PERMISSION),
        (KeyError("x"), ErrorCategory.UNKNOWN),
    ])
    def test_foreign_errors_are_categorized(self, handler, error, category):
        assert handler.handle_error(error, "vote").category is category

    @pytest.mark.parametrize("reason, message", [
        ("private", "This board is private."),
        ("not_owner", "Only the board owner can do this."),
        ("view_only", "Guests can only view this board."),
        ("not_author", "Only the author or the board owner can change this."),
    ])
    def test_permission_messages(self, handler, reason, message):
        context = handler.handle_error(PermissionDeniedError("denied", reason=reason), "edit")

        assert context.user_message == message

    def test_validation_message_is_passed_through(self, handler):
        context = handler.handle_error(ValidationError("Comment cannot be empty."), "add comment")

        assert context.user_message == "Comment cannot be empty."

    def test_notification_callback(self, handler):
        notifications = []
        handler.set_notification_callback(
            lambda title, message, severity: notifications.append((title, message, severity))
        )

        handler.handle_error(NetworkFailure("offline"), "like post")

        assert len(notifications) == 1
        title, message, severity = notifications[0]
        assert title == "Network Error"
        assert "connection" in message
        assert severity is ErrorSeverity.WARNING

    def test_notification_can_be_suppressed(self, handler):
        notifications = []
        handler.set_notification_callback(lambda *args: notifications.append(args))

        handler.handle_error(ValidationError("bad"), "vote", show_notification=False)

        assert notifications == []

    def test_failing_callback_does_not_raise(self, handler):
        def broken(title, message, severity):
            raise RuntimeError("view is gone")

        handler.set_notification_callback(broken)

        handler.handle_error(ValidationError("bad"), "vote")

    def test_error_count(self, handler):
        handler.handle_error(ValidationError("a"), "x")
        handler.handle_error(ValidationError("b"), "x")

        assert handler.get_error_count() == 2
        handler.reset_error_count()
        assert handler.get_error_count() == 0

    def test_global_handler(self, handler):
        previous = get_error_handler()
        try:
            set_error_handler(handler)
            assert get_error_handler() is handler
        finally:
            set_error_handler(previous)
