"""
Best-effort persistence.

Writes that happen around an already obtained result (a live chain read, a
banking balance) must never abort that result. They go through
``best_effort_write`` which commits, rolls back and logs on failure, and hands
the caller a ``WriteOutcome`` to acknowledge.
"""
import logging
from typing import Any, Callable, NamedTuple, Optional

from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class WriteOutcome(NamedTuple):
    ok: bool
    value: Any = None
    error: Optional[str] = None


def best_effort_write(db: Optional[Session], label: str, fn: Callable, *args, **kwargs) -> WriteOutcome:
    try:
        value = fn(*args, **kwargs)
        if db is not None:
            db.commit()
        return WriteOutcome(True, value)
    except Exception as e:
        if db is not None:
            try:
                db.rollback()
            except Exception as rollback_error:
                logger.error(f"Rollback after failed {label} also failed: {rollback_error}")
        logger.error(f"Best-effort write '{label}' failed: {e}")
        return WriteOutcome(False, None, str(e))


def all_ok(outcomes) -> bool:
    return all(outcome.ok for outcome in outcomes)
