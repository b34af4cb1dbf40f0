"""IMAP session and dialer capabilities.

The engine only needs login/select/search/fetch/logout, and talks to
them through the IMAPSession protocol. imapclient.IMAPClient already
has this shape (in its default UID mode), so the real dialer returns
one directly; tests substitute fakes.
"""

from typing import Any, Protocol

from imapclient import IMAPClient

# Fetched for every new message. BODY.PEEK[] leaves \Seen untouched;
# the server answers it under the b"BODY[]" key.
FETCH_ITEMS = ["ENVELOPE", "BODYSTRUCTURE", "BODY.PEEK[]"]


class IMAPSession(Protocol):
    """An authenticated-or-not IMAP connection using UIDs."""

    def login(self, username: str, password: str) -> Any: ...

    def select_folder(self, folder: str, readonly: bool = False) -> dict: ...

    def search(self, criteria: Any = "ALL") -> list[int]: ...

    def fetch(self, messages: list[int], data: list[str]) -> dict[int, dict]: ...

    def logout(self) -> Any: ...


class IMAPDialer(Protocol):
    """Opens new IMAP sessions."""

    def dial(self, host: str, port: int, ssl: bool) -> IMAPSession: ...


class IMAPClientDialer:
    """Dialer backed by imapclient.

    Example:
        dialer = IMAPClientDialer(timeout=60)
        session = dialer.dial("imap.example.com", 993, ssl=True)
        session.login("user", "secret")
    """

    def __init__(self, timeout: float | None = None):
        """Initialize the dialer.

        Args:
            timeout: Socket timeout in seconds for every IMAP operation.
                     None leaves operations unbounded.
        """
        self._timeout = timeout

    def dial(self, host: str, port: int, ssl: bool) -> IMAPSession:
        """Connect to host:port, with TLS when ssl is True."""
        client = IMAPClient(host, port=port, ssl=ssl, use_uid=True, timeout=self._timeout)
        # Keep the sender's UTC offset on envelope dates
        client.normalise_times = False
        return client


def message_count(status: dict) -> int:
    """Number of messages from a SELECT response."""
    return int(status.get(b"EXISTS", 0) or 0)


def uid_search_criteria(watermark: int) -> list[str]:
    """Search criteria for every UID above the watermark.

    A watermark of 0 means nothing has been seen yet, so the range
    starts at the first possible UID.
    """
    start = watermark + 1 if watermark > 0 else 1
    return ["UID", f"{start}:*"]
