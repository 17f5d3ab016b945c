"""Unit-of-work helper for operations that span several repository writes."""

from contextlib import contextmanager

from protean.core.unit_of_work import UnitOfWork
from protean.utils.globals import current_uow


@contextmanager
def transaction():
    """Run the block in a unit of work, joining the one already in progress.

    Writes inside the block become visible together when the outermost
    block exits, and are discarded if it raises.
    """
    if current_uow and current_uow.in_progress:
        yield current_uow
        return

    uow = UnitOfWork()
    uow.start()
    try:
        yield uow
    except Exception:
        uow.rollback()
        raise
    uow.commit()
