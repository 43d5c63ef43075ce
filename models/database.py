"""
SQLAlchemy database models for the Ahmo Wall document store.

The board core talks to a document database addressed by slash-separated
paths. Every document, whatever its collection, lives in one table keyed by
its full path; the owning collection path is stored alongside so that a
collection snapshot is a single indexed query.
"""

from datetime import datetime, timezone
from sqlalchemy import Column, String, DateTime, JSON, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class StoredDocument(Base):
    """
    Represents one document of the store.

    ``path`` is ``<collection>/<doc_id>`` where the collection itself may be
    nested (``ahmo-wall_boards/<board>/posts``). ``data`` holds the JSON
    payload exactly as written by the client.
    """
    __tablename__ = 'documents'

    path = Column(String, primary_key=True)
    collection = Column(String, nullable=False)
    doc_id = Column(String, nullable=False)
    data = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    __table_args__ = (
        Index('ix_documents_collection', 'collection'),
    )

    def __repr__(self):
        return f"<StoredDocument(path={self.path})>"
