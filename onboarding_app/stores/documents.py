"""
Key-value document store on top of the ``documents`` table.

Exposes the narrow surface the campaign pipeline needs: point reads,
equality-filtered queries, merge upserts and atomic multi-operation commits
with a hard per-commit operation limit.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Iterable, Literal, Mapping, Sequence, Tuple
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from onboarding_app.models.base import db
from onboarding_app.models.documents import Document
from onboarding_app.utils.serialization import normalize_payload

MAX_OPERATIONS_PER_COMMIT = 500

Filter = Tuple[str, Any]


class DocumentStoreError(RuntimeError):
    """Raised when the underlying database rejects a read or commit."""


class DocumentNotFoundError(DocumentStoreError):
    """Raised when updating a document that does not exist."""

    def __init__(self, collection: str, key: str):
        super().__init__(f"Document {collection}/{key} does not exist.")
        self.collection = collection
        self.key = key


class BatchLimitExceededError(DocumentStoreError):
    """Raised when a single commit carries more operations than the store accepts."""


@dataclass(frozen=True)
class StoredDocument:
    """A document returned from a query."""

    collection: str
    key: str
    data: dict[str, Any]


@dataclass(frozen=True)
class WriteOp:
    """One create/update/delete operation inside an atomic commit."""

    action: Literal["set", "update", "delete"]
    collection: str
    key: str
    data: Mapping[str, Any] | None = None
    merge: bool = False

    @classmethod
    def set(cls, collection: str, key: str, data: Mapping[str, Any], *, merge: bool = False) -> "WriteOp":
        return cls("set", collection, key, dict(data), merge)

    @classmethod
    def update(cls, collection: str, key: str, data: Mapping[str, Any]) -> "WriteOp":
        return cls("update", collection, key, dict(data))

    @classmethod
    def delete(cls, collection: str, key: str) -> "WriteOp":
        return cls("delete", collection, key)


def _compile_filter(field: str, value: Any):
    element = Document.data[field]
    # bool before int: True is an int.
    if isinstance(value, bool):
        return element.as_boolean() == value
    if isinstance(value, int):
        return element.as_integer() == value
    if isinstance(value, float):
        return element.as_float() == value
    if isinstance(value, str):
        return element.as_string() == value
    raise TypeError(f"Unsupported filter value for '{field}': {value!r}")


class DocumentStore:
    """
    Document store bound to a SQLAlchemy session (``db.session`` by default).

    Every public write commits immediately; ``commit_batch`` applies a list of
    operations all-or-nothing.
    """

    def __init__(self, session=None, *, max_operations_per_commit: int = MAX_OPERATIONS_PER_COMMIT):
        self._session = session
        self.max_operations_per_commit = max_operations_per_commit

    @property
    def session(self):
        return self._session if self._session is not None else db.session

    @staticmethod
    def new_key() -> str:
        return uuid4().hex

    def get(self, collection: str, key: str) -> dict[str, Any] | None:
        document = self._load(collection, key)
        if document is None:
            return None
        return copy.deepcopy(document.data or {})

    def query(self, collection: str, filters: Iterable[Filter] = ()) -> list[StoredDocument]:
        """Return documents matching every ``(field, value)`` filter in insertion order."""

        stmt = select(Document).where(Document.collection == collection)
        for field, value in filters:
            stmt = stmt.where(_compile_filter(field, value))
        stmt = stmt.order_by(Document.id)
        try:
            rows = self.session.execute(stmt).scalars().all()
        except SQLAlchemyError as exc:
            raise DocumentStoreError(str(exc)) from exc
        return [StoredDocument(row.collection, row.key, copy.deepcopy(row.data or {})) for row in rows]

    def count(self, collection: str, filters: Iterable[Filter] = ()) -> int:
        stmt = select(func.count(Document.id)).where(Document.collection == collection)
        for field, value in filters:
            stmt = stmt.where(_compile_filter(field, value))
        try:
            return int(self.session.execute(stmt).scalar_one())
        except SQLAlchemyError as exc:
            raise DocumentStoreError(str(exc)) from exc

    def set(self, collection: str, key: str, data: Mapping[str, Any], *, merge: bool = True) -> None:
        self.commit_batch([WriteOp.set(collection, key, data, merge=merge)])

    def update(self, collection: str, key: str, data: Mapping[str, Any]) -> None:
        self.commit_batch([WriteOp.update(collection, key, data)])

    def delete(self, collection: str, key: str) -> None:
        self.commit_batch([WriteOp.delete(collection, key)])

    def commit_batch(self, operations: Sequence[WriteOp]) -> int:
        """
        Apply ``operations`` in a single transaction.

        Returns the number of operations applied. Nothing is written when any
        operation fails.
        """

        if len(operations) > self.max_operations_per_commit:
            raise BatchLimitExceededError(
                f"Commit of {len(operations)} operations exceeds the limit of "
                f"{self.max_operations_per_commit}."
            )
        if not operations:
            return 0
        session = self.session
        try:
            for operation in operations:
                self._apply(operation)
            session.commit()
        except DocumentNotFoundError:
            session.rollback()
            raise
        except SQLAlchemyError as exc:
            session.rollback()
            raise DocumentStoreError(str(exc)) from exc
        return len(operations)

    def _load(self, collection: str, key: str) -> Document | None:
        stmt = select(Document).where(Document.collection == collection, Document.key == key)
        try:
            return self.session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise DocumentStoreError(str(exc)) from exc

    def _apply(self, operation: WriteOp) -> None:
        document = self._load(operation.collection, operation.key)
        if operation.action == "delete":
            if document is not None:
                self.session.delete(document)
                self.session.flush()
            return

        payload = normalize_payload(operation.data)
        if operation.action == "update":
            if document is None:
                raise DocumentNotFoundError(operation.collection, operation.key)
            document.data = {**(document.data or {}), **payload}
            return

        if document is None:
            self.session.add(Document(collection=operation.collection, key=operation.key, data=payload))
            self.session.flush()
        elif operation.merge:
            document.data = {**(document.data or {}), **payload}
        else:
            document.data = payload
