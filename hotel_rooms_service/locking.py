"""
Per-room serialization for writes that must see a consistent reservation set.

Two layers are combined:

- an in-process lock keyed by room id, so threads of one worker queue up per
  room (and SQLite, which ignores ``FOR UPDATE``, stays correct);
- ``SELECT ... FOR UPDATE`` on the room row inside the store transaction, so
  workers in other processes queue up on databases that support row locks.

Locks are never shared between rooms: work on room A never waits for room B.
"""
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from sqlalchemy.orm import Session

from . import models
from .config import ROOM_LOCK_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)


class RoomLockTimeout(TimeoutError):
    def __init__(self, room_id: str, timeout: float):
        super().__init__(f"Timed out after {timeout}s waiting for room {room_id}")
        self.room_id = room_id
        self.timeout = timeout


class RoomLockRegistry:
    """
    Hands out one ``threading.Lock`` per room id.

    An entry lives only while some caller holds or waits for it, so ids that
    never existed do not accumulate. The registry's own mutex only protects
    the bookkeeping and is never held while a room lock is being waited on.
    """

    def __init__(self):
        # room id -> [lock, number of callers holding or waiting]
        self._entries: Dict[str, List] = {}
        self._mutex = threading.Lock()

    def __len__(self) -> int:
        with self._mutex:
            return len(self._entries)

    def holders(self, room_id: str) -> int:
        """Number of callers currently holding or waiting for ``room_id``."""
        with self._mutex:
            entry = self._entries.get(room_id)
            return entry[1] if entry is not None else 0

    def _checkout(self, room_id: str) -> threading.Lock:
        with self._mutex:
            entry = self._entries.get(room_id)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._entries[room_id] = entry
            entry[1] += 1
            return entry[0]

    def _checkin(self, room_id: str) -> None:
        with self._mutex:
            entry = self._entries[room_id]
            entry[1] -= 1
            if entry[1] == 0:
                del self._entries[room_id]

    @contextmanager
    def hold(self, room_id: str, timeout: Optional[float] = None) -> Iterator[None]:
        timeout = ROOM_LOCK_TIMEOUT_SECONDS if timeout is None else timeout
        lock = self._checkout(room_id)
        try:
            if not lock.acquire(timeout=timeout):
                logger.warning("Lock wait for room %s exceeded %.1fs", room_id, timeout)
                raise RoomLockTimeout(room_id, timeout)
            try:
                yield
            finally:
                lock.release()
        finally:
            self._checkin(room_id)


room_locks = RoomLockRegistry()


@contextmanager
def room_transaction(
    db: Session,
    room_id: str,
    timeout: Optional[float] = None,
) -> Iterator[Optional[models.Room]]:
    """
    Run a block of work as the only writer for ``room_id``.

    Acquires the room's in-process lock, selects the room row ``FOR UPDATE``
    and yields it (``None`` if the room does not exist). The transaction is
    committed when the block exits normally and rolled back if it raises,
    so a rejected or interrupted write leaves no partial rows behind.

    Parameters
    ----------
    db : Session
        Session owning the transaction.
    room_id : str
        Room whose reservation set is being read and written.
    timeout : float, optional
        Seconds to wait for the in-process lock. Defaults to
        ``ROOM_LOCK_TIMEOUT_SECONDS``.

    Yields
    ------
    Room or None
        The locked room row.

    Raises
    ------
    RoomLockTimeout
        If the lock could not be acquired in time.
    """
    with room_locks.hold(room_id, timeout):
        # objects loaded before the lock was taken may be stale
        db.expire_all()
        try:
            room = (
                db.query(models.Room)
                .filter(models.Room.id == room_id)
                .with_for_update()
                .one_or_none()
            )
            yield room
            db.commit()
        except BaseException:
            db.rollback()
            raise
