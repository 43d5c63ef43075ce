"""
Core module for the Ahmo Wall board core.

This module contains the infrastructure the board logic builds on:
- Document store with push subscriptions
- Object storage for attachments
- Identity session and session-scoped storage
- Board password hashing
- Error taxonomy and handling
"""

__version__ = "0.1.0"

from core.document_store import DocumentStore, StoreClient, Subscription, WriteBatch
from core.error_handler import (
    BoardError,
    ErrorHandler,
    FileTooLargeError,
    NetworkFailure,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from core.object_storage import LocalObjectStorage, ObjectStorage, UploadResult

__all__ = [
    'DocumentStore',
    'StoreClient',
    'Subscription',
    'WriteBatch',
    'BoardError',
    'ErrorHandler',
    'FileTooLargeError',
    'NetworkFailure',
    'NotFoundError',
    'PermissionDeniedError',
    'StorageError',
    'ValidationError',
    'LocalObjectStorage',
    'ObjectStorage',
    'UploadResult',
]
