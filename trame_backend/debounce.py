"""
Debounce Coordinator: coalesces bursts of edits into one durable write.

Each owner is either idle (the Note Store is authoritative) or pending (an
in-memory PendingEdit holds the latest accepted content and a timer armed for
`now + window`). Every new edit replaces the buffered content and re-arms the
timer, so a write happens only after a quiet period of one window. Reads are
served from the pending edit when there is one.

Locking, per owner:
    state_lock  guards `pending` and its timer handle. Never held across I/O.
    write_lock  serializes durable writes. Acquired before state_lock.

A flush snapshots the pending content under both locks, writes it with only
the write lock held, then clears the pending edit if no newer edit replaced
it meanwhile. A newer edit keeps its own timer, so nothing accepted is lost
to the race between snapshot and clear.

An owner's slot is dropped from the map once its flush leaves it idle, so the
map only holds owners with an open window. Retiring happens under both of the
slot's locks; `submit_edit` re-checks that its slot is still the registered
one after taking the state lock.
"""
import itertools
import logging
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, List, Optional

from .errors import IOFailure, StorageError

logger = logging.getLogger(__name__)


@dataclass
class PendingEdit:
    owner_id: str
    content: str
    seq: int
    submitted_at: datetime
    timer: Optional[threading.Timer] = field(default=None, repr=False)
    flush_failed: bool = False


@dataclass(frozen=True)
class NoteSnapshot:
    content: str
    updated_at: Optional[datetime]
    pending: bool
    flush_failed: bool = False


class _OwnerSlot:
    __slots__ = ("state_lock", "write_lock", "pending", "last_written_seq")

    def __init__(self):
        self.state_lock = threading.Lock()
        self.write_lock = threading.Lock()
        self.pending: Optional[PendingEdit] = None
        self.last_written_seq = 0


# PUBLIC_INTERFACE
class DebounceCoordinator:
    """
    Buffers the latest edit per owner and flushes it to `store` after
    `window_seconds` without further edits.

    `store` needs `put(owner_id, content)` and `get(owner_id)` returning an
    object with `content` and `updated_at`.
    """

    def __init__(self, store, window_seconds: float = 0.5):
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self._store = store
        self.window = window_seconds
        self._slots: Dict[str, _OwnerSlot] = {}
        self._slots_lock = threading.Lock()
        self._seq = itertools.count(1)
        self._closed = False

    def _slot(self, owner_id: str, create: bool = True) -> Optional[_OwnerSlot]:
        with self._slots_lock:
            slot = self._slots.get(owner_id)
            if slot is None and create:
                slot = self._slots[owner_id] = _OwnerSlot()
            return slot

    def _locked_slot(self, owner_id: str) -> _OwnerSlot:
        """Returns the registered slot with its state_lock held by the caller."""
        while True:
            slot = self._slot(owner_id)
            slot.state_lock.acquire()
            if self._slots.get(owner_id) is slot:
                return slot
            # retired between lookup and lock
            slot.state_lock.release()

    def _retire(self, owner_id: str, slot: _OwnerSlot):
        """Drop an idle slot from the map. Caller holds the slot's write_lock and state_lock."""
        if slot.pending is not None:
            return
        with self._slots_lock:
            # after shutdown every slot stays put for the write-through path
            if not self._closed and self._slots.get(owner_id) is slot:
                del self._slots[owner_id]

    def _arm(self, pending: PendingEdit):
        """Cancel the previous timer and schedule a flush one window from now. Caller holds state_lock."""
        if pending.timer is not None:
            pending.timer.cancel()
        timer = threading.Timer(self.window, self._on_deadline, args=(pending.owner_id, pending.seq))
        timer.daemon = True
        pending.timer = timer
        timer.start()

    @staticmethod
    def _disarm(pending: PendingEdit):
        if pending.timer is not None:
            pending.timer.cancel()
            pending.timer = None

    # PUBLIC_INTERFACE
    def submit_edit(self, owner_id: str, content: str) -> int:
        """
        Accepts an edit without waiting for storage and returns its arrival
        sequence number. The most recently arrived edit always wins.
        After shutdown, edits are written through synchronously.
        """
        slot = self._locked_slot(owner_id)
        try:
            seq = next(self._seq)
            if not self._closed:
                pending = slot.pending
                if pending is None:
                    pending = slot.pending = PendingEdit(
                        owner_id=owner_id,
                        content=content,
                        seq=seq,
                        submitted_at=datetime.now(timezone.utc),
                    )
                else:
                    pending.content = content
                    pending.seq = seq
                    pending.submitted_at = datetime.now(timezone.utc)
                self._arm(pending)
                return seq
        finally:
            slot.state_lock.release()
        self._write_through(owner_id, slot, content, seq)
        return seq

    def _write_through(self, owner_id: str, slot: _OwnerSlot, content: str, seq: int):
        with slot.write_lock:
            if seq > slot.last_written_seq:
                self._store.put(owner_id, content)
                slot.last_written_seq = seq
            with slot.state_lock:
                if slot.pending is not None and slot.pending.seq < seq:
                    self._disarm(slot.pending)
                    slot.pending = None

    # PUBLIC_INTERFACE
    def read(self, owner_id: str) -> NoteSnapshot:
        """Latest accepted content: the pending edit if any, else the stored note."""
        slot = self._slot(owner_id, create=False)
        if slot is not None:
            with slot.state_lock:
                pending = slot.pending
                if pending is not None:
                    return NoteSnapshot(
                        content=pending.content,
                        updated_at=pending.submitted_at,
                        pending=True,
                        flush_failed=pending.flush_failed,
                    )
        stored = self._store.get(owner_id)
        return NoteSnapshot(content=stored.content, updated_at=stored.updated_at, pending=False)

    def _flush(self, owner_id: str, slot: _OwnerSlot, expected_seq: Optional[int] = None) -> bool:
        with slot.write_lock:
            with slot.state_lock:
                pending = slot.pending
                if pending is None:
                    return False
                if expected_seq is not None and pending.seq != expected_seq:
                    # superseded; the newer edit's timer governs
                    return False
                content, seq = pending.content, pending.seq
            try:
                if seq > slot.last_written_seq:
                    self._store.put(owner_id, content)
                    slot.last_written_seq = seq
            except Exception:
                with slot.state_lock:
                    current = slot.pending
                    if current is not None and current.seq == seq:
                        current.flush_failed = True
                        if not self._closed:
                            self._arm(current)
                raise
            with slot.state_lock:
                current = slot.pending
                if current is not None and current.seq == seq:
                    self._disarm(current)
                    slot.pending = None
                    self._retire(owner_id, slot)
        logger.debug("Flushed pending edit", extra={"owner_id": owner_id, "seq": seq})
        return True

    def _on_deadline(self, owner_id: str, seq: int):
        slot = self._slot(owner_id, create=False)
        if slot is None:
            return
        try:
            self._flush(owner_id, slot, expected_seq=seq)
        except Exception:
            # runs on the timer thread: nobody above us to re-raise to
            logger.exception(
                "Scheduled flush failed; edit kept pending for retry",
                extra={"owner_id": owner_id, "seq": seq},
            )

    # PUBLIC_INTERFACE
    def flush(self, owner_id: str, seq: int) -> bool:
        """
        Deadline flush for the edit numbered `seq`. Does nothing if that edit
        was already flushed or replaced by a newer one.
        """
        slot = self._slot(owner_id, create=False)
        if slot is None:
            return False
        return self._flush(owner_id, slot, expected_seq=seq)

    # PUBLIC_INTERFACE
    def force_flush(self, owner_id: str) -> bool:
        """
        Persists the owner's pending edit now and cancels its timer.
        Returns False when nothing was pending. A failed write raises
        StorageError and leaves the edit pending with its timer re-armed.
        """
        slot = self._slot(owner_id, create=False)
        if slot is None:
            return False
        try:
            return self._flush(owner_id, slot)
        except StorageError:
            logger.error("Forced flush failed", extra={"owner_id": owner_id})
            raise

    # PUBLIC_INTERFACE
    def force_flush_all(self) -> int:
        """Force-flushes every owner. Raises IOFailure after trying all of them if any failed."""
        with self._slots_lock:
            owners = list(self._slots)
        flushed = 0
        failed = []
        for owner_id in owners:
            try:
                if self.force_flush(owner_id):
                    flushed += 1
            except StorageError:
                failed.append(owner_id)
        if failed:
            raise IOFailure(f"{len(failed)} owner(s) could not be flushed", "force_flush_all")
        return flushed

    # PUBLIC_INTERFACE
    def pending_owners(self) -> List[str]:
        with self._slots_lock:
            slots = list(self._slots.items())
        owners = []
        for owner_id, slot in slots:
            with slot.state_lock:
                if slot.pending is not None:
                    owners.append(owner_id)
        return owners

    @property
    def closed(self) -> bool:
        return self._closed

    # PUBLIC_INTERFACE
    def shutdown(self) -> int:
        """
        Stops debouncing: flushes every pending edit and cancels all timers.
        Later edits are written through. Returns the number of owners flushed.
        """
        with self._slots_lock:
            self._closed = True
            slots = list(self._slots.values())
        # a submit already inside state_lock may still buffer; the flush below picks it up
        for slot in slots:
            with slot.state_lock:
                pass
        try:
            flushed = self.force_flush_all()
        finally:
            for slot in slots:
                with slot.state_lock:
                    if slot.pending is not None:
                        self._disarm(slot.pending)
                        logger.error(
                            "Pending edit not persisted at shutdown",
                            extra={"owner_id": slot.pending.owner_id, "seq": slot.pending.seq},
                        )
        logger.info(f"Debounce coordinator shut down, {flushed} pending edit(s) flushed")
        return flushed
