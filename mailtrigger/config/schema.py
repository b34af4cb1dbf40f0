"""Configuration schema definitions.

Uses TypedDict for type safety without runtime overhead.
These types match the structure of config.toml. Keys are hyphenated
in the file, so the functional TypedDict syntax is used throughout.
"""

from typing import TypedDict


# [imap] table.
#
# Attributes:
#     server: IMAP server host name.
#     port: IMAP server port (993 for TLS, 143 for plaintext).
#     username: Login user name.
#     password: Login password (prefer MAILTRIGGER_IMAP_PASSWORD).
#     use-ssl: Connect with TLS.
#     retry-interval-seconds: Delay before retrying a failed connect.
IMAPConfig = TypedDict(
    "IMAPConfig",
    {
        "server": str,
        "port": int,
        "username": str,
        "password": str,
        "use-ssl": bool,
        "retry-interval-seconds": int,
    },
    total=False,
)


# [[monitor.triggers]] entry.
#
# Attributes:
#     regex-pattern: Pattern matched against the message text body.
#     from: Pattern matched against the sender address.
#     to: Pattern matched against each recipient address.
#     subject: Pattern matched against the subject line.
#     ignore-case: Case-insensitive matching (default true).
#     final: Stop evaluating later triggers once this one matches.
#     command: Shell command run on match.
TriggerConfig = TypedDict(
    "TriggerConfig",
    {
        "regex-pattern": str,
        "from": str,
        "to": str,
        "subject": str,
        "ignore-case": bool,
        "final": bool,
        "command": str,
    },
    total=False,
)


# [[monitor]] entry.
#
# Attributes:
#     mailbox: Mailbox (folder) name, e.g. "INBOX".
#     check-interval-seconds: Per-mailbox override of the global interval.
#     triggers: Ordered trigger rules for this mailbox.
MailboxConfig = TypedDict(
    "MailboxConfig",
    {
        "mailbox": str,
        "check-interval-seconds": int,
        "triggers": list[TriggerConfig],
    },
    total=False,
)


# Root configuration structure.
#
# Attributes:
#     check-interval-seconds: Global polling interval.
#     imap: Connection settings.
#     monitor: Mailboxes to watch, in order.
MonitorConfig = TypedDict(
    "MonitorConfig",
    {
        "check-interval-seconds": int,
        "imap": IMAPConfig,
        "monitor": list[MailboxConfig],
    },
    total=False,
)
