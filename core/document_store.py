"""
Document store for the Ahmo Wall board core.

This module provides the DocumentStore class, a path-addressed document
database persisted through SQLAlchemy, and the StoreClient handle each
participant uses to read, write and subscribe. Every write commits in its own
transaction with automatic rollback on errors; subscribers receive full
collection snapshots pushed on the event loop after the commit.
"""

import asyncio
import copy
import logging
import uuid
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple
from sqlalchemy import create_engine, event, text
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from core.error_handler import (
    BoardError,
    NetworkFailure,
    NotFoundError,
    PermissionDeniedError,
    StorageError,
    ValidationError,
)
from models.database import Base, StoredDocument


logger = logging.getLogger(__name__)

READ = "read"
WRITE = "write"
DELETE = "delete"

# (operation, path, requester uid, data) -> allowed
Rules = Callable[[str, str, Optional[str], Optional[Dict[str, Any]]], bool]


def split_path(path: str) -> Tuple[str, str]:
    """
    Split a document path into its collection path and document id.

    Raises:
        ValidationError: If the path does not address a document
    """
    segments = [s for s in path.strip('/').split('/') if s]
    if len(segments) < 2 or len(segments) % 2 != 0:
        raise ValidationError(f"Not a document path: {path!r}")
    return '/'.join(segments[:-1]), segments[-1]


@dataclass
class DocumentSnapshot:
    """Point-in-time copy of one document."""
    path: str
    data: Optional[Dict[str, Any]]

    @property
    def id(self) -> str:
        return self.path.rsplit('/', 1)[-1]

    @property
    def exists(self) -> bool:
        return self.data is not None


@dataclass
class _WriteOp:
    kind: str  # 'set', 'update' or 'delete'
    path: str
    data: Optional[Dict[str, Any]] = None
    merge: bool = False


class Subscription:
    """
    Handle for a live listener.

    Releasing it (``unsubscribe`` or leaving the ``with`` block) guarantees
    no further callback invocations, including deliveries already queued on
    the event loop.
    """

    def __init__(self, store: 'DocumentStore', target: str, callback: Callable, is_collection: bool):
        self._store = store
        self.target = target
        self.callback = callback
        self.is_collection = is_collection
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._store._remove_subscription(self)
        logger.debug(f"Released listener on {self.target}")

    def __enter__(self) -> 'Subscription':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unsubscribe()


class DocumentStore:
    """
    Path-addressed document database with push subscriptions.

    The optional ``rules`` callable plays the part of the backend's own
    authorization layer: it is consulted for every read and write with the
    requester's uid, and a falsy answer rejects the request with
    PermissionDeniedError.
    """

    def __init__(self, db_path: Path, rules: Optional[Rules] = None):
        """
        Initialize the document store.

        Args:
            db_path: Path to the SQLite database file
            rules: Optional authorization callable
        """
        self.db_path = db_path
        self.rules = rules
        self.engine = None
        self.SessionLocal = None
        self.offline = False

        self._collection_listeners: Dict[str, List[Subscription]] = {}
        self._document_listeners: Dict[str, List[Subscription]] = {}

    def initialize(self) -> None:
        """
        Create the schema if it doesn't exist and set up the session factory.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=False,
            connect_args={"check_same_thread": False}
        )

        @event.listens_for(self.engine, "connect")
        def set_sqlite_pragma(dbapi_conn, connection_record):
            cursor = dbapi_conn.cursor()
            cursor.execute("PRAGMA journal_mode=WAL")
            cursor.close()

        Base.metadata.create_all(self.engine)
        self.SessionLocal = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.info(f"Document store ready at {self.db_path}")

    def close(self) -> None:
        """Drop all listeners and dispose of the engine."""
        for subs in list(self._collection_listeners.values()) + list(self._document_listeners.values()):
            for sub in list(subs):
                sub.unsubscribe()
        if self.engine is not None:
            self.engine.dispose()

    def connect(self, uid: Optional[str] = None) -> 'StoreClient':
        """
        Open a client handle acting on behalf of ``uid`` (None = anonymous).
        """
        return StoreClient(self, uid)

    @contextmanager
    def get_session(self) -> Session:
        """
        Context manager for database sessions with automatic rollback on error.

        Yields:
            Session: SQLAlchemy session object
        """
        session = self.SessionLocal()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Authorization and error mapping
    # ------------------------------------------------------------------

    def _check(self, operation: str, path: str, uid: Optional[str], data: Optional[Dict[str, Any]] = None) -> None:
        if self.rules is None:
            return
        if not self.rules(operation, path, uid, data):
            logger.debug(f"Rules rejected {operation} on {path} for {uid or 'anonymous'}")
            raise PermissionDeniedError(f"Missing or insufficient permissions for {operation} on {path}")

    def _run(self, description: str, fn: Callable[[], Any]) -> Any:
        """Run a database operation, mapping driver errors onto the board taxonomy."""
        if self.offline:
            raise NetworkFailure(f"Document store is offline ({description})")
        try:
            return fn()
        except BoardError:
            raise
        except OperationalError as e:
            logger.error(f"Store unreachable during {description}: {e}")
            raise NetworkFailure(f"{description} failed: {e}")
        except SQLAlchemyError as e:
            logger.error(f"Store error during {description}: {e}")
            raise StorageError(f"{description} failed: {e}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _read_document(self, path: str) -> DocumentSnapshot:
        with self.get_session() as session:
            doc = session.get(StoredDocument, path)
            data = copy.deepcopy(doc.data) if doc else None
            return DocumentSnapshot(path=path, data=data)

    def _read_collection(self, collection: str) -> List[DocumentSnapshot]:
        with self.get_session() as session:
            docs = session.query(StoredDocument).filter(
                StoredDocument.collection == collection
            ).order_by(StoredDocument.created_at.asc(), text("documents.rowid")).all()
            return [DocumentSnapshot(path=d.path, data=copy.deepcopy(d.data)) for d in docs]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _apply_op(self, session: Session, op: _WriteOp) -> None:
        collection, doc_id = split_path(op.path)
        doc = session.get(StoredDocument, op.path)
        now = datetime.now(timezone.utc)

        if op.kind == 'delete':
            if doc is not None:
                session.delete(doc)
            return

        if op.kind == 'update':
            if doc is None:
                raise NotFoundError(f"No document to update at {op.path}")
            doc.data = {**doc.data, **copy.deepcopy(op.data)}
            doc.updated_at = now
            return

        payload = copy.deepcopy(op.data)
        if doc is None:
            session.add(StoredDocument(
                path=op.path,
                collection=collection,
                doc_id=doc_id,
                data=payload,
                created_at=now,
                updated_at=now,
            ))
        else:
            doc.data = {**doc.data, **payload} if op.merge else payload
            doc.updated_at = now

    def _commit(self, ops: List[_WriteOp], uid: Optional[str]) -> None:
        """Apply all operations in one transaction, then notify listeners."""
        if not ops:
            return
        for op in ops:
            split_path(op.path)
            self._check(DELETE if op.kind == 'delete' else WRITE, op.path, uid, op.data)

        def apply():
            with self.get_session() as session:
                for op in ops:
                    self._apply_op(session, op)
                    session.flush()

        self._run(f"write of {len(ops)} document(s)", apply)
        self._notify([op.path for op in ops])

    def _transact(self, path: str, fn: Callable[[Optional[Dict[str, Any]]], Optional[Dict[str, Any]]],
                  uid: Optional[str]) -> Optional[Dict[str, Any]]:
        """Atomic read-modify-write of a single document."""
        split_path(path)
        self._check(READ, path, uid)

        def apply():
            with self.get_session() as session:
                doc = session.get(StoredDocument, path)
                current = copy.deepcopy(doc.data) if doc else None
                updated = fn(current)
                if updated is None:
                    return None
                self._check(WRITE, path, uid, updated)
                self._apply_op(session, _WriteOp('set', path, updated))
                return updated

        result = self._run(f"transaction on {path}", apply)
        if result is not None:
            self._notify([path])
        return result

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def _add_subscription(self, sub: Subscription) -> None:
        registry = self._collection_listeners if sub.is_collection else self._document_listeners
        registry.setdefault(sub.target, []).append(sub)
        self._schedule(sub)

    def _remove_subscription(self, sub: Subscription) -> None:
        registry = self._collection_listeners if sub.is_collection else self._document_listeners
        subs = registry.get(sub.target, [])
        if sub in subs:
            subs.remove(sub)
        if not subs:
            registry.pop(sub.target, None)

    def listener_count(self) -> int:
        """Number of live listeners, across all targets."""
        return (
            sum(len(s) for s in self._collection_listeners.values())
            + sum(len(s) for s in self._document_listeners.values())
        )

    def _notify(self, paths: List[str]) -> None:
        pending: List[Subscription] = []
        for path in paths:
            collection, _ = split_path(path)
            for sub in self._collection_listeners.get(collection, []) + self._document_listeners.get(path, []):
                if sub not in pending:
                    pending.append(sub)
        for sub in pending:
            self._schedule(sub)

    def _schedule(self, sub: Subscription) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self._deliver(sub)
            return
        loop.call_soon(self._deliver, sub)

    def _deliver(self, sub: Subscription) -> None:
        if not sub.active:
            return
        try:
            if sub.is_collection:
                snapshot = self._run(f"snapshot of {sub.target}", lambda: self._read_collection(sub.target))
            else:
                snapshot = self._run(f"snapshot of {sub.target}", lambda: self._read_document(sub.target))
        except BoardError as e:
            logger.error(f"Failed to build snapshot for {sub.target}: {e}")
            return
        try:
            sub.callback(snapshot)
        except Exception as e:
            logger.error(f"Snapshot listener for {sub.target} raised: {e}")


class WriteBatch:
    """Collects writes and commits them atomically."""

    def __init__(self, client: 'StoreClient'):
        self._client = client
        self._ops: List[_WriteOp] = []

    def __len__(self) -> int:
        return len(self._ops)

    def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> 'WriteBatch':
        self._ops.append(_WriteOp('set', path, data, merge))
        return self

    def update(self, path: str, fields: Dict[str, Any]) -> 'WriteBatch':
        self._ops.append(_WriteOp('update', path, fields))
        return self

    def delete(self, path: str) -> 'WriteBatch':
        self._ops.append(_WriteOp('delete', path))
        return self

    async def commit(self) -> None:
        self._client._store._commit(self._ops, self._client.uid)
        self._ops = []


class StoreClient:
    """
    A participant's handle on the document store.

    All operations are coroutines; each one is a suspension point for the
    caller only.
    """

    def __init__(self, store: DocumentStore, uid: Optional[str] = None):
        self._store = store
        self.uid = uid

    def with_uid(self, uid: Optional[str]) -> 'StoreClient':
        """Return a handle for the same store acting as another requester."""
        return StoreClient(self._store, uid)

    async def get(self, path: str) -> DocumentSnapshot:
        split_path(path)
        self._store._check(READ, path, self.uid)
        return self._store._run(f"read of {path}", lambda: self._store._read_document(path))

    async def list(self, collection: str) -> List[DocumentSnapshot]:
        self._store._check(READ, collection, self.uid)
        return self._store._run(f"read of {collection}", lambda: self._store._read_collection(collection))

    async def add(self, collection: str, data: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex
        self._store._commit([_WriteOp('set', f"{collection}/{doc_id}", data)], self.uid)
        return doc_id

    async def set(self, path: str, data: Dict[str, Any], merge: bool = False) -> None:
        self._store._commit([_WriteOp('set', path, data, merge)], self.uid)

    async def update(self, path: str, fields: Dict[str, Any]) -> None:
        self._store._commit([_WriteOp('update', path, fields)], self.uid)

    async def delete(self, path: str) -> None:
        self._store._commit([_WriteOp('delete', path)], self.uid)

    def batch(self) -> WriteBatch:
        return WriteBatch(self)

    async def transaction(
        self,
        path: str,
        fn: Callable[[Optional[Dict[str, Any]]], Optional[Dict[str, Any]]]
    ) -> Optional[Dict[str, Any]]:
        """
        Read ``path``, pass its data (or None) to ``fn`` and write back what
        ``fn`` returns. Returning None from ``fn`` leaves the document as is.
        Exceptions raised by ``fn`` abort the transaction.
        """
        return self._store._transact(path, fn, self.uid)

    def subscribe_collection(self, collection: str, callback: Callable[[List[DocumentSnapshot]], None]) -> Subscription:
        self._store._check(READ, collection, self.uid)
        sub = Subscription(self._store, collection, callback, is_collection=True)
        self._store._add_subscription(sub)
        return sub

    def subscribe_document(self, path: str, callback: Callable[[DocumentSnapshot], None]) -> Subscription:
        split_path(path)
        self._store._check(READ, path, self.uid)
        sub = Subscription(self._store, path, callback, is_collection=False)
        self._store._add_subscription(sub)
        return sub
