# Overview: Document number allocation for transactions and transfer references.

from __future__ import annotations

from ..extensions import db
from ..models import DocumentSequence
from .concurrency import lock_for_update


class DocumentSequenceError(Exception):
    """Raised when document sequence operations fail."""
    pass


# (document_type, printed prefix)
SALE_SEQUENCE = ("SALE", "S")
DISPATCH_SEQUENCE = ("DISPATCH", "MV")
RETURN_SEQUENCE = ("RETURN", "R")
TRANSFER_SEQUENCE = ("TRANSFER", "TRF")


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    pad: int = 4,
) -> str:
    """
    Allocate the next document number for a type.

    Runs inside the caller's transaction (no commit) so the number is only
    consumed if the document that uses it is committed. The sequence row is
    locked for the rest of that transaction.
    """
    if not document_type:
        raise DocumentSequenceError("document_type is required")

    seq = lock_for_update(
        db.session.query(DocumentSequence).filter_by(document_type=document_type)
    ).first()
    if seq is None:
        seq = DocumentSequence(document_type=document_type, next_number=1)
        db.session.add(seq)

    number = seq.next_number or 1
    seq.next_number = number + 1
    db.session.flush()

    return f"{prefix}-{number:0{pad}d}"
