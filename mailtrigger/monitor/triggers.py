"""Trigger compilation and matching.

A trigger pairs up to four patterns (body, from, to, subject) with a
shell command. Patterns are compiled once when the engine is built;
an invalid pattern aborts construction.
"""

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from mailtrigger.config import effective_check_interval
from mailtrigger.config.schema import MonitorConfig, TriggerConfig
from mailtrigger.errors import InvalidPatternError, MissingTriggerError

from .message import FetchedMessage


@dataclass(frozen=True)
class CompiledTrigger:
    """A trigger with its patterns compiled.

    An unset pattern is None and matches anything.
    """

    command: str
    body: re.Pattern | None = None
    sender: re.Pattern | None = None
    recipient: re.Pattern | None = None
    subject: re.Pattern | None = None
    final: bool = False

    def matches(self, message: FetchedMessage, body: str) -> bool:
        """Return True if every pattern this trigger defines is satisfied.

        Args:
            message: The fetched message (for header patterns).
            body: Extracted text body (for the body pattern).
        """
        if self.body is not None and not self.body.search(body):
            return False

        if self.sender is not None and not _any_match(self.sender, message.from_addrs):
            return False

        # Match against each To address
        if self.recipient is not None and not _any_match(
            self.recipient, message.to_addrs
        ):
            return False

        if self.subject is not None and not self.subject.search(message.subject):
            return False

        return True


@dataclass(frozen=True)
class CompiledMailbox:
    """A mailbox name, its effective interval, and its compiled triggers."""

    name: str
    interval: int
    triggers: tuple[CompiledTrigger, ...] = field(default_factory=tuple)


def _any_match(pattern: re.Pattern, values: Iterable[str]) -> bool:
    return any(pattern.search(value) for value in values)


def _compile(field_name: str, pattern: str | None, flags: int) -> re.Pattern | None:
    if not pattern:
        return None
    try:
        return re.compile(pattern, flags)
    except (re.error, TypeError) as e:
        if field_name == "regex-pattern":
            raise InvalidPatternError(f"invalid regex pattern {pattern!r}: {e}") from e
        raise InvalidPatternError(
            f"invalid '{field_name}' pattern {pattern!r}: {e}"
        ) from e


def compile_trigger(trigger: TriggerConfig) -> CompiledTrigger:
    """Compile one trigger configuration.

    Args:
        trigger: Trigger table from the config file.

    Returns:
        The compiled trigger.

    Raises:
        MissingTriggerError: If no pattern is set.
        InvalidPatternError: If a pattern does not compile.
    """
    flags = re.IGNORECASE if trigger.get("ignore-case", True) else 0

    compiled = CompiledTrigger(
        command=trigger.get("command", ""),
        body=_compile("regex-pattern", trigger.get("regex-pattern"), flags),
        sender=_compile("from", trigger.get("from"), flags),
        recipient=_compile("to", trigger.get("to"), flags),
        subject=_compile("subject", trigger.get("subject"), flags),
        final=bool(trigger.get("final", False)),
    )

    if not any((compiled.body, compiled.sender, compiled.recipient, compiled.subject)):
        raise MissingTriggerError("no trigger conditions specified")

    return compiled


def compile_mailboxes(config: MonitorConfig) -> list[CompiledMailbox]:
    """Compile every monitored mailbox in configuration order.

    Raises:
        MissingTriggerError, InvalidPatternError: On the first bad trigger.
            The message names the mailbox and trigger index.
    """
    mailboxes = []

    for mailbox in config.get("monitor", []):
        name = mailbox.get("mailbox", "")
        triggers = []
        for i, trigger in enumerate(mailbox.get("triggers", [])):
            try:
                triggers.append(compile_trigger(trigger))
            except (MissingTriggerError, InvalidPatternError) as e:
                raise type(e)(f"{e} (trigger {i} of mailbox {name})") from e

        mailboxes.append(
            CompiledMailbox(
                name=name,
                interval=effective_check_interval(config, mailbox),
                triggers=tuple(triggers),
            )
        )

    return mailboxes


def group_by_interval(
    mailboxes: Sequence[CompiledMailbox],
) -> dict[int, list[CompiledMailbox]]:
    """Partition mailboxes by effective interval.

    Groups appear in order of first occurrence, and mailboxes keep their
    configuration order within a group.
    """
    groups: dict[int, list[CompiledMailbox]] = {}
    for mailbox in mailboxes:
        groups.setdefault(mailbox.interval, []).append(mailbox)
    return groups


def matching_triggers(
    triggers: Iterable[CompiledTrigger], message: FetchedMessage, body: str
) -> list[CompiledTrigger]:
    """Return every trigger that matches, in order.

    All triggers are evaluated independently, except that a matching
    trigger marked final ends evaluation for this message.
    """
    matched = []
    for trigger in triggers:
        if trigger.matches(message, body):
            matched.append(trigger)
            if trigger.final:
                break
    return matched
