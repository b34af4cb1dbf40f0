"""Exception hierarchy for mailtrigger.

Configuration errors are fatal and raised before the engine exists.
Connection errors are recoverable and handled by the reconnect loop.
Message and command errors are logged and never stop monitoring.
"""


class MailTriggerError(Exception):
    """Base class for all mailtrigger errors."""

    pass


class ConfigError(MailTriggerError):
    """Invalid or incomplete configuration."""

    pass


class ConfigFileError(ConfigError):
    """Config file could not be read or parsed."""

    pass


class MissingIMAPServerError(ConfigError):
    """IMAP server must be set."""

    pass


class InvalidIMAPPortError(ConfigError):
    """IMAP port must be between 1 and 65535."""

    pass


class MissingTriggerError(ConfigError):
    """A monitor entry, mailbox name, trigger or trigger condition is missing."""

    pass


class InvalidPatternError(ConfigError):
    """A trigger pattern is not a valid regular expression."""

    pass


class InvalidIntervalError(ConfigError):
    """A check or retry interval is not a positive integer."""

    pass


class MonitorConnectionError(MailTriggerError):
    """Recoverable failure talking to the IMAP server."""

    pass


class ConnectionFailedError(MonitorConnectionError):
    """Failed to connect to the IMAP server."""

    pass


class AuthenticationFailedError(MonitorConnectionError):
    """IMAP authentication failed."""

    pass


class MailboxNotFoundError(MonitorConnectionError):
    """Mailbox could not be selected."""

    pass


class MessageProcessingError(MailTriggerError):
    """A single fetched message could not be decoded."""

    pass


class CommandExecutionError(MailTriggerError):
    """A trigger command could not be started."""

    pass
