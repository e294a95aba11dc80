# Overview: Per-franchise document number allocation.

from __future__ import annotations

import re

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


def _current_number(franchise_id: str, document_type: str) -> int:
    return (
        db.session.query(DocumentSequence.next_number)
        .filter_by(franchise_id=franchise_id, document_type=document_type)
        .scalar()
    )


def _format_number(prefix: str, franchise_id: str, number: int, pad: int) -> str:
    code = re.sub(r"[^A-Za-z0-9]+", "", franchise_id).upper() or "X"
    return f"{prefix}-{code}-{number:0{pad}d}"


def allocate_document_number(
    *,
    franchise_id: str,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Allocate the next number inside the caller's open transaction.

    No commit and no retry: the number is only consumed if the caller's
    transaction commits, so a rolled-back invoice never burns a number.
    """
    if not franchise_id:
        raise DocumentSequenceError("franchise_id is required")
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.franchise_id == franchise_id,
            DocumentSequence.document_type == document_type,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        db.session.flush()
        next_num = _current_number(franchise_id, document_type) - 1
    else:
        seq = DocumentSequence(franchise_id=franchise_id, document_type=document_type, next_number=2)
        try:
            with db.session.begin_nested():
                db.session.add(seq)
            next_num = 1
        except IntegrityError:
            # Another writer created the row first; bump theirs instead
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise
            next_num = _current_number(franchise_id, document_type) - 1

    return _format_number(prefix, franchise_id, next_num, pad)
