"""Shared fixtures and fakes for mailtrigger tests.

The fakes stand in for the engine's injected capabilities so the engine
can be exercised without network, subprocesses or real time.
"""

import asyncio
from datetime import datetime, timezone

import pytest
from imapclient.response_types import Address, Envelope

from mailtrigger.monitor.commands import CommandResult


class FakeIMAPError(Exception):
    """Error raised by FakeSession operations."""

    pass


def make_message(
    body: str = "Hello",
    from_addr: str = "alice@example.com",
    to_addrs: tuple[str, ...] = ("bob@example.com",),
    subject: str = "Test message",
    date: datetime | None = datetime(2024, 1, 15, 10, 0, tzinfo=timezone.utc),
) -> dict:
    """Build one imapclient-style fetch result entry."""

    def address(addr: str) -> Address:
        mailbox, host = addr.split("@")
        return Address(None, None, mailbox.encode(), host.encode())

    envelope = Envelope(
        date=date,
        subject=subject.encode(),
        from_=(address(from_addr),),
        sender=(address(from_addr),),
        reply_to=None,
        to=tuple(address(a) for a in to_addrs),
        cc=None,
        bcc=None,
        in_reply_to=None,
        message_id=b"<test@example.com>",
    )
    raw = (
        f"From: {from_addr}\r\n"
        f"To: {', '.join(to_addrs)}\r\n"
        f"Subject: {subject}\r\n"
        'Content-Type: text/plain; charset="utf-8"\r\n'
        "\r\n"
        f"{body}"
    ).encode()
    return {b"ENVELOPE": envelope, b"BODY[]": raw, b"SEQ": 1}


class FakeSession:
    """In-memory IMAP session using UIDs.

    mailboxes maps a mailbox name to {uid: fetch data}.
    """

    def __init__(self, mailboxes: dict[str, dict[int, dict]] | None = None):
        self.mailboxes = mailboxes if mailboxes is not None else {}
        self.selected: str | None = None
        self.calls: list[tuple] = []
        self.login_error: Exception | None = None
        self.search_error: Exception | None = None
        self.fetch_error: Exception | None = None
        self.logged_out = False

    def login(self, username, password):
        self.calls.append(("login", username, password))
        if self.login_error:
            raise self.login_error
        return b"LOGIN completed"

    def select_folder(self, folder, readonly=False):
        self.calls.append(("select_folder", folder, readonly))
        if folder not in self.mailboxes:
            raise FakeIMAPError(f"no such mailbox: {folder}")
        self.selected = folder
        messages = self.mailboxes[folder]
        return {
            b"EXISTS": len(messages),
            b"UIDNEXT": max(messages, default=0) + 1,
        }

    def search(self, criteria="ALL"):
        self.calls.append(("search", criteria))
        if self.search_error:
            raise self.search_error
        uids = sorted(self.mailboxes[self.selected])
        if criteria == "ALL":
            return uids

        _, uid_range = criteria
        start = int(uid_range.split(":")[0])
        result = [uid for uid in uids if uid >= start]
        # Like a real server, "N:*" always matches the highest UID
        if not result and uids:
            result = [uids[-1]]
        return result

    def fetch(self, messages, data):
        self.calls.append(("fetch", list(messages), list(data)))
        if self.fetch_error:
            raise self.fetch_error
        mailbox = self.mailboxes[self.selected]
        return {uid: mailbox[uid] for uid in messages if uid in mailbox}

    def logout(self):
        self.calls.append(("logout",))
        self.logged_out = True

    def fetched_uids(self) -> list[int]:
        """All UIDs requested by fetch calls so far."""
        return [uid for call in self.calls if call[0] == "fetch" for uid in call[1]]


class FakeDialer:
    """Hands out FakeSessions; a queued exception fails that attempt."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.dials: list[tuple] = []

    def dial(self, host, port, ssl):
        self.dials.append((host, port, ssl))
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class FakeRunner:
    """Records commands instead of running them."""

    def __init__(self, result: CommandResult | None = None):
        self.result = result or CommandResult(returncode=0, stdout=b"ok")
        self.runs: list[tuple[str, dict, bytes]] = []

    async def run(self, command, env, stdin):
        self.runs.append((command, dict(env), stdin))
        return self.result


class FakeTimer:
    """Records sleeps without waiting; sets stop after max_sleeps.

    on_sleep, if given, is called with the duration of every sleep.
    """

    def __init__(self, max_sleeps: int = 1, on_sleep=None):
        self.max_sleeps = max_sleeps
        self.on_sleep = on_sleep
        self.sleeps: list[float] = []

    async def sleep(self, seconds, stop: asyncio.Event) -> bool:
        self.sleeps.append(seconds)
        if self.on_sleep:
            self.on_sleep(seconds)
        await asyncio.sleep(0)
        if len(self.sleeps) >= self.max_sleeps:
            stop.set()
        return stop.is_set()


@pytest.fixture
def config() -> dict:
    """A minimal valid configuration with one INBOX trigger."""
    return {
        "check-interval-seconds": 30,
        "imap": {
            "server": "imap.example.com",
            "port": 993,
            "username": "user@example.com",
            "password": "secret",
            "use-ssl": True,
        },
        "monitor": [
            {
                "mailbox": "INBOX",
                "triggers": [
                    {"regex-pattern": "urgent.*alert", "command": "handle-alert"},
                ],
            }
        ],
    }


@pytest.fixture
def session() -> FakeSession:
    """A session with an empty INBOX."""
    return FakeSession({"INBOX": {}})


@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()
