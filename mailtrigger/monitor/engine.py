"""Monitor engine for email-triggered commands.

Owns the reconnect loop and composes the other monitor pieces:
connects and authenticates, initializes per-mailbox watermarks, polls
each interval group on its own task, matches new messages against the
mailbox triggers, and starts the commands of matching triggers.

Example:
    engine = MonitorEngine(config)
    loop.add_signal_handler(signal.SIGTERM, engine.stop)
    await engine.run()
"""

import asyncio
import logging
from collections.abc import Callable, Sequence
from typing import Any

from mailtrigger.config import effective_retry_interval, validate_config
from mailtrigger.config.schema import MonitorConfig
from mailtrigger.errors import (
    AuthenticationFailedError,
    ConnectionFailedError,
    MailboxNotFoundError,
    MonitorConnectionError,
)

from .commands import CommandRunner, ShellCommandRunner, build_command_env
from .imap import (
    FETCH_ITEMS,
    IMAPClientDialer,
    IMAPDialer,
    IMAPSession,
    message_count,
    uid_search_criteria,
)
from .message import FetchedMessage, extract_text_body
from .state import WatermarkStore
from .timer import AsyncioTimer, Timer
from .triggers import (
    CompiledMailbox,
    CompiledTrigger,
    compile_mailboxes,
    group_by_interval,
    matching_triggers,
)

# Delay before reconnecting after the polling phase ends with an error
RECONNECT_DELAY = 5

# How long run() waits for in-flight commands before cancelling them
COMMAND_GRACE_PERIOD = 10


class MonitorEngine:
    """Watches IMAP mailboxes and runs trigger commands for new messages.

    Configuration is validated and every trigger compiled in the
    constructor, so a bad config never produces an engine. All side
    effects go through injected capabilities (dialer, runner, timer,
    logger); the defaults are the real implementations.

    Session access is serialized: one lock is held for each whole
    mailbox check (select, search, fetch), so interval groups running
    concurrently never interleave requests on the shared connection.
    Blocking IMAP calls run in worker threads.
    """

    def __init__(
        self,
        config: MonitorConfig,
        *,
        dialer: IMAPDialer | None = None,
        runner: CommandRunner | None = None,
        timer: Timer | None = None,
        logger: logging.Logger | None = None,
        command_grace_period: float = COMMAND_GRACE_PERIOD,
    ):
        """Initialize the engine.

        Args:
            config: Loaded configuration.
            dialer: Opens IMAP sessions. Defaults to IMAPClientDialer.
            runner: Runs trigger commands. Defaults to ShellCommandRunner.
            timer: Interruptible sleeps. Defaults to AsyncioTimer.
            logger: Destination for all engine logging.
            command_grace_period: Seconds run() waits for running
                commands when it exits.

        Raises:
            ConfigError: If the configuration is invalid or a trigger
                pattern does not compile.
        """
        validate_config(config)
        self._mailboxes = compile_mailboxes(config)

        imap = config["imap"]
        self._server = imap["server"]
        self._port = imap["port"]
        self._username = imap.get("username", "")
        self._password = imap.get("password", "")
        self._use_ssl = imap.get("use-ssl", True)
        self._retry_interval = effective_retry_interval(config)

        self._dialer = dialer or IMAPClientDialer()
        self._runner = runner or ShellCommandRunner()
        self._timer = timer or AsyncioTimer()
        self._logger = logger or logging.getLogger(__name__)
        self._command_grace_period = command_grace_period

        self._session: IMAPSession | None = None
        self._session_lock = asyncio.Lock()
        self._watermarks = WatermarkStore()
        self._stop = asyncio.Event()
        self._command_tasks: set[asyncio.Task] = set()

    @property
    def mailboxes(self) -> Sequence[CompiledMailbox]:
        return tuple(self._mailboxes)

    @property
    def watermarks(self) -> WatermarkStore:
        return self._watermarks

    @property
    def connected(self) -> bool:
        return self._session is not None

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    @property
    def pending_commands(self) -> frozenset[asyncio.Task]:
        """Command tasks that have not finished yet."""
        return frozenset(self._command_tasks)

    def stop(self) -> None:
        """Ask run() to finish. Wakes every pending wait."""
        self._stop.set()

    async def _call(self, func: Callable[..., Any], *args: Any) -> Any:
        future = asyncio.ensure_future(asyncio.to_thread(func, *args))
        try:
            return await asyncio.shield(future)
        except asyncio.CancelledError:
            # The worker thread can't be interrupted; keep holding the
            # session until it is done with it
            await asyncio.gather(future, return_exceptions=True)
            raise

    def _require_session(self) -> IMAPSession:
        if self._session is None:
            raise MonitorConnectionError("not connected to IMAP server")
        return self._session

    # --- connection lifecycle ---

    async def connect(self) -> None:
        """Dial the server and log in.

        Raises:
            ConnectionFailedError: If the server can't be reached.
            AuthenticationFailedError: If login is rejected.
        """
        address = f"{self._server}:{self._port}"
        self._logger.info("connecting to %s", address)

        try:
            session = await self._call(
                self._dialer.dial, self._server, self._port, self._use_ssl
            )
        except Exception as e:
            raise ConnectionFailedError(
                f"failed to connect to IMAP server {address}: {e}"
            ) from e

        try:
            await self._call(session.login, self._username, self._password)
        except Exception as e:
            await self._close(session)
            raise AuthenticationFailedError(
                f"IMAP authentication failed for {self._username!r}: {e}"
            ) from e

        self._session = session

    async def disconnect(self) -> None:
        """Close the live session, if any. Safe to call repeatedly.

        Waits for an in-flight mailbox check to release the session first.
        """
        async with self._session_lock:
            session, self._session = self._session, None
            if session is not None:
                await self._close(session)

    async def _close(self, session: IMAPSession) -> None:
        try:
            await self._call(session.logout)
        except Exception as e:
            # The connection is usually already broken at this point
            self._logger.debug("error closing IMAP session: %s", e)

    async def run(self) -> None:
        """Monitor until stop() is called.

        Reconnects forever: after a failed connect it waits the retry
        interval, after a polling error it waits RECONNECT_DELAY.
        Watermarks are kept across reconnects.
        """
        self._logger.info(
            "starting email monitor for %d mailboxes", len(self._mailboxes)
        )

        try:
            while not self._stop.is_set():
                try:
                    await self.connect()
                except MonitorConnectionError as e:
                    self._logger.warning(
                        "connection failed: %s. Retrying in %d seconds...",
                        e,
                        self._retry_interval,
                    )
                    await self._timer.sleep(self._retry_interval, self._stop)
                    continue

                self._logger.info("connected to IMAP server")

                try:
                    await self.initialize_watermarks()
                    await self._poll()
                except Exception as e:
                    self._logger.error("monitor error: %s. Reconnecting...", e)
                finally:
                    await self.disconnect()

                await self._timer.sleep(RECONNECT_DELAY, self._stop)
        finally:
            await self.disconnect()
            await self._drain_commands()

        self._logger.info("email monitor stopped")

    # --- watermarks ---

    async def _select(self, name: str) -> dict:
        session = self._require_session()
        try:
            return await self._call(session.select_folder, name, True)
        except Exception as e:
            raise MailboxNotFoundError(f"mailbox not found: {name}: {e}") from e

    async def initialize_watermarks(self) -> None:
        """Record the current highest UID of every mailbox.

        Mailboxes that already have a watermark (from an earlier
        connection) keep it, so nothing is reprocessed or skipped across
        reconnects. Any failure aborts the whole initialization.
        """
        async with self._session_lock:
            for mailbox in self._mailboxes:
                await self._initialize_watermark(mailbox.name)

    async def _initialize_watermark(self, name: str) -> None:
        status = await self._select(name)

        if name in self._watermarks:
            self._logger.debug(
                "keeping watermark for %s: UID %d", name, self._watermarks.get(name)
            )
            return

        if message_count(status) == 0:
            self._watermarks.set(name, 0)
            self._logger.info("mailbox %s is empty, starting with UID 0", name)
            return

        uids = await self._call(self._require_session().search, "ALL")
        last_uid = max(uids, default=0)
        self._watermarks.set(name, last_uid)
        self._logger.info("mailbox %s initialized with last UID %d", name, last_uid)

    # --- polling ---

    async def _poll(self) -> None:
        """Run one task per interval group until stop or the first error."""
        groups = group_by_interval(self._mailboxes)
        tasks = [
            asyncio.create_task(
                self._poll_group(interval, mailboxes), name=f"poll-{interval}s"
            )
            for interval, mailboxes in groups.items()
        ]
        stop_waiter = asyncio.create_task(self._stop.wait())

        try:
            done, _ = await asyncio.wait(
                [*tasks, stop_waiter], return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            for task in (*tasks, stop_waiter):
                task.cancel()
            await asyncio.gather(*tasks, stop_waiter, return_exceptions=True)

        for task in tasks:
            if task in done and not task.cancelled() and task.exception() is not None:
                raise task.exception()

    async def _poll_group(
        self, interval: int, mailboxes: Sequence[CompiledMailbox]
    ) -> None:
        names = ", ".join(mailbox.name for mailbox in mailboxes)
        self._logger.info("checking %s every %d seconds", names, interval)

        while not await self._timer.sleep(interval, self._stop):
            for mailbox in mailboxes:
                if self._stop.is_set():
                    return
                await self.check_mailbox(mailbox)

    async def check_mailbox(self, mailbox: CompiledMailbox) -> int:
        """Fetch and process messages newer than the mailbox watermark.

        Args:
            mailbox: The mailbox to check.

        Returns:
            Number of new messages processed.

        Raises:
            MonitorConnectionError: If not connected or the select fails.
            Exception: Whatever the IMAP client raises for search/fetch.
        """
        async with self._session_lock:
            return await self._check_mailbox(mailbox)

    async def _check_mailbox(self, mailbox: CompiledMailbox) -> int:
        name = mailbox.name
        self._logger.debug("checking for new messages in %s", name)

        status = await self._select(name)
        if message_count(status) == 0:
            self._logger.debug("no messages in %s", name)
            return 0

        session = self._require_session()
        watermark = self._watermarks.get(name)
        uids = await self._call(session.search, uid_search_criteria(watermark))

        # "N:*" always matches the highest UID, even when it is below N
        new_uids = sorted(uid for uid in uids if uid > watermark)
        if not new_uids:
            self._logger.debug("no new messages in %s", name)
            return 0

        self._logger.info(
            "found %d new messages in %s (UIDs: %s)", len(new_uids), name, new_uids
        )

        response = await self._call(session.fetch, new_uids, FETCH_ITEMS)

        wanted = set(new_uids)
        processed = 0
        for uid, data in response.items():
            # Skip unsolicited FETCH responses (flag updates, etc.)
            if uid not in wanted:
                continue
            self.process_message(mailbox, uid, data)
            # Advance per message so progress survives a later failure
            self._watermarks.advance(name, uid)
            processed += 1

        self._logger.info(
            "processed %d messages in %s, last UID now %d",
            processed,
            name,
            self._watermarks.get(name),
        )
        return processed

    # --- dispatch ---

    def process_message(self, mailbox: CompiledMailbox, uid: int, data: dict) -> int:
        """Match one fetched message against the mailbox triggers.

        Errors are logged and the message skipped; they never stop the
        rest of the batch.

        Args:
            mailbox: Mailbox the message came from.
            uid: Message UID.
            data: imapclient fetch data for the message.

        Returns:
            Number of triggers that matched.
        """
        try:
            message = FetchedMessage.from_fetch(uid, data)
            body = extract_text_body(message.raw)
            matched = matching_triggers(mailbox.triggers, message, body)
        except Exception as e:
            self._logger.error(
                "error processing message UID %d in %s: %s", uid, mailbox.name, e
            )
            return 0

        self._logger.info(
            "processing message UID %d from %s, subject: %s",
            uid,
            message.sender,
            message.subject,
        )

        for trigger in matched:
            self._logger.info("trigger matched message UID %d in %s", uid, mailbox.name)
            self.dispatch(trigger, message, body)

        return len(matched)

    def dispatch(
        self, trigger: CompiledTrigger, message: FetchedMessage, body: str
    ) -> asyncio.Task | None:
        """Start the trigger command in the background.

        Polling never waits for the command; its outcome is only logged.

        Returns:
            The background task, or None if the trigger has no command.
        """
        if not trigger.command:
            self._logger.info(
                "no command configured for trigger matching message UID %d",
                message.uid,
            )
            return None

        env = build_command_env(message)
        task = asyncio.create_task(
            self._execute(trigger.command, env, body, message.uid)
        )
        self._command_tasks.add(task)
        task.add_done_callback(self._command_tasks.discard)
        return task

    async def _execute(
        self, command: str, env: dict[str, str], body: str, uid: int
    ) -> None:
        try:
            result = await self._runner.run(command, env, body.encode("utf-8"))
        except Exception as e:
            self._logger.error("command for message UID %d failed to start: %s", uid, e)
            return

        stdout = result.stdout.decode("utf-8", errors="replace").strip()
        stderr = result.stderr.decode("utf-8", errors="replace").strip()

        if result.ok:
            self._logger.info(
                "command for message UID %d executed successfully. stdout: %s, stderr: %s",
                uid,
                stdout,
                stderr,
            )
        else:
            self._logger.warning(
                "command for message UID %d failed with exit status %d. stdout: %s, stderr: %s",
                uid,
                result.returncode,
                stdout,
                stderr,
            )

    async def _drain_commands(self) -> None:
        if not self._command_tasks:
            return

        self._logger.info(
            "waiting for %d running commands to finish", len(self._command_tasks)
        )
        _, pending = await asyncio.wait(
            set(self._command_tasks), timeout=self._command_grace_period
        )
        for task in pending:
            task.cancel()
        if pending:
            self._logger.warning("cancelled %d unfinished commands", len(pending))
            await asyncio.gather(*pending, return_exceptions=True)
