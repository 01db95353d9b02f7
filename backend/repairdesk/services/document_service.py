# Overview: Per-store sequential numbering for tickets.

from __future__ import annotations

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


DOCUMENT_TYPE_TICKET = "TICKET"


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def next_document_number(*, store_id: int, document_type: str) -> int:
    """
    Atomically allocate the next number for a store/document type.

    Runs inside the caller's transaction. The UPDATE ... SET next_number + 1
    takes the row lock, so two concurrent allocations for the same store
    serialize and never hand out the same number. The first allocation for a
    store inserts the sequence row inside a savepoint; losing that insert race
    falls back to the UPDATE path.
    """
    if not store_id:
        raise DocumentSequenceError("store_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.store_id == store_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        try:
            with db.session.begin_nested():
                db.session.add(
                    DocumentSequence(store_id=store_id, document_type=document_type, next_number=2)
                )
            return 1
        except IntegrityError:
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(store_id=store_id, document_type=document_type)
        .scalar()
    )
    return current - 1
