"""Watermark tracking for incremental fetching.

Stores, per mailbox, the highest message UID already processed. Kept
in memory only: watermarks survive reconnects but not restarts.
"""

import threading


class WatermarkStore:
    """Maps mailbox name to the highest processed UID.

    Several interval-group tasks write to the store, each on its own
    mailboxes. Every read and write goes through one lock, so access is
    safe from the event loop and from worker threads alike.

    Example:
        store = WatermarkStore()
        store.set("INBOX", 12)
        store.advance("INBOX", 15)  # -> 15
        store.advance("INBOX", 14)  # -> 15
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._watermarks: dict[str, int] = {}

    def __contains__(self, mailbox: str) -> bool:
        with self._lock:
            return mailbox in self._watermarks

    def get(self, mailbox: str) -> int:
        """Return the watermark, or 0 if the mailbox is not tracked."""
        with self._lock:
            return self._watermarks.get(mailbox, 0)

    def set(self, mailbox: str, uid: int) -> None:
        """Store a watermark unconditionally (used on initialization)."""
        with self._lock:
            self._watermarks[mailbox] = uid

    def advance(self, mailbox: str, uid: int) -> int:
        """Raise the watermark to uid if it is higher.

        Returns:
            The watermark after the update.
        """
        with self._lock:
            current = self._watermarks.get(mailbox, 0)
            if uid > current:
                self._watermarks[mailbox] = uid
                return uid
            return current

    def snapshot(self) -> dict[str, int]:
        """Return a copy of all watermarks."""
        with self._lock:
            return dict(self._watermarks)
