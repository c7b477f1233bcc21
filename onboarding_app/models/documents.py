"""
SQLAlchemy model backing the campaign document store.

Campaign ledgers, uploaded records, validation jobs and the dialer campaign
cache are all schemaless JSON documents grouped by collection. Keeping them in
one table lets the pipeline treat storage as a key-value document store while
still running on the same database as the rest of the app.
"""

from __future__ import annotations

from sqlalchemy import Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from .base import BaseModel, db


class Document(BaseModel):
    """One JSON document addressed by ``(collection, key)``."""

    __tablename__ = "documents"
    __table_args__ = (
        UniqueConstraint("collection", "key", name="uq_documents_collection_key"),
        Index("ix_documents_collection_id", "collection", "id"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    collection: Mapped[str] = mapped_column(db.String(100), nullable=False)
    key: Mapped[str] = mapped_column(db.String(255), nullable=False)
    data: Mapped[dict] = mapped_column(db.JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<Document {self.collection}/{self.key}>"
