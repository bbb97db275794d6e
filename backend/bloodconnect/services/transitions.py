"""Conditional writes used by every state machine in the workflow."""
from typing import Any

from sqlalchemy.orm import Session


def guarded_update(
    db: Session,
    model: Any,
    entity_id: str,
    expected_status: str,
    values: dict[str, Any],
    *criteria: Any,
) -> bool:
    """Apply ``values`` only if the row is still in ``expected_status``.

    The status check and the write are a single UPDATE statement, so of two
    racing transitions from the same state exactly one matches a row.
    Returns False (and writes nothing) when the precondition no longer holds.
    """
    updated = db.query(model).filter(
        model.id == entity_id,
        model.status == expected_status,
        *criteria,
    ).update(values, synchronize_session=False)
    return updated == 1
