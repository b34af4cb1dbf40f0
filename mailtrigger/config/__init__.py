"""Configuration management module.

Handles loading, validating, and rendering the mailtrigger configuration.
Config is stored at ~/.config/mailtrigger/config.toml unless another path
is given on the command line.

Usage:
    from mailtrigger.config import load_config, apply_overrides, validate_config

    config = load_config(path)
    config = apply_overrides(config, {"imap.server": "imap.example.com"})
    validate_config(config)
"""

import copy
import tomllib
from pathlib import Path
from typing import Any

import tomli_w

from mailtrigger.errors import (
    ConfigFileError,
    InvalidIMAPPortError,
    InvalidIntervalError,
    MissingIMAPServerError,
    MissingTriggerError,
)

from .paths import CONFIG_FILE, ensure_config_dir
from .schema import MailboxConfig, MonitorConfig, TriggerConfig
from .template import CONFIG_TEMPLATE

__all__ = [
    "load_config",
    "apply_overrides",
    "validate_config",
    "init_config",
    "dump_config",
    "effective_check_interval",
    "effective_retry_interval",
    "CONFIG_FILE",
    "DEFAULT_CHECK_INTERVAL",
    "DEFAULT_RETRY_INTERVAL",
    "DEFAULT_PORT",
]

DEFAULT_CHECK_INTERVAL = 30
DEFAULT_RETRY_INTERVAL = 30
DEFAULT_PORT = 993

# Trigger keys that hold match patterns
PATTERN_KEYS = ("regex-pattern", "from", "to", "subject")


def default_config() -> MonitorConfig:
    """Return the built-in defaults as a fresh configuration dict."""
    return {
        "check-interval-seconds": DEFAULT_CHECK_INTERVAL,
        "imap": {
            "server": "",
            "port": DEFAULT_PORT,
            "username": "",
            "password": "",
            "use-ssl": True,
            "retry-interval-seconds": DEFAULT_RETRY_INTERVAL,
        },
        "monitor": [],
    }


def load_config(path: Path | None = None) -> MonitorConfig:
    """Load configuration from disk, layered over the built-in defaults.

    A missing default config file is not an error: the defaults are
    returned and validation will report what is missing. A missing file
    that was asked for explicitly is an error.

    Args:
        path: Config file to read. Defaults to CONFIG_FILE.

    Returns:
        The merged configuration dictionary.

    Raises:
        ConfigFileError: If the file can't be read or isn't valid TOML.
    """
    config = default_config()
    explicit = path is not None
    path = path or CONFIG_FILE

    if not path.exists():
        if explicit:
            raise ConfigFileError(f"config file not found: {path}")
        return config

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigFileError(f"invalid TOML in {path}: {e}") from e
    except OSError as e:
        raise ConfigFileError(f"cannot read {path}: {e}") from e

    return _merge(config, raw)


def _merge(config: dict, raw: dict) -> dict:
    """Recursively merge raw file values over config.

    Tables are merged key by key; arrays and scalars replace.
    """
    merged = copy.deepcopy(config)
    for key, value in raw.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def apply_overrides(config: MonitorConfig, overrides: dict[str, Any]) -> MonitorConfig:
    """Apply command-line overrides using dot notation.

    Examples:
        apply_overrides(config, {"imap.server": "imap.example.com"})
        apply_overrides(config, {"check-interval-seconds": 60})

    Values of None are skipped, so unset CLI options leave the file
    value in place.

    Args:
        config: Loaded configuration.
        overrides: Mapping of dot-separated keys to values.

    Returns:
        A new configuration dict with the overrides applied.
    """
    result = copy.deepcopy(config)

    for key, value in overrides.items():
        if value is None:
            continue

        parts = key.split(".")

        # Navigate to parent dict, creating intermediate dicts as needed
        current: dict = result
        for part in parts[:-1]:
            current = current.setdefault(part, {})

        current[parts[-1]] = value

    return result


def validate_config(config: MonitorConfig) -> None:
    """Check that required configuration values are set.

    Pattern syntax is checked later, when triggers are compiled.

    Args:
        config: The configuration to check.

    Raises:
        MissingIMAPServerError: If the server is empty.
        InvalidIMAPPortError: If the port is not in 1..65535.
        InvalidIntervalError: If any interval is not a positive integer.
        MissingTriggerError: If monitors, mailbox names, triggers or
            trigger conditions are missing.
    """
    imap = config.get("imap", {})

    if not imap.get("server"):
        raise MissingIMAPServerError("IMAP server must be set: server is empty")

    port = imap.get("port")
    if not _is_int(port) or not 0 < port < 65536:
        raise InvalidIMAPPortError(f"IMAP port must be non-zero: port is {port}")

    _check_interval("check-interval-seconds", config.get("check-interval-seconds"))
    _check_interval(
        "imap.retry-interval-seconds", imap.get("retry-interval-seconds")
    )

    monitors = config.get("monitor", [])
    if not monitors:
        raise MissingTriggerError("no monitor configurations provided")

    for i, mailbox in enumerate(monitors):
        name = mailbox.get("mailbox")
        if not name:
            raise MissingTriggerError(f"mailbox is empty in monitor {i}")

        if "check-interval-seconds" in mailbox:
            _check_interval(
                f"check-interval-seconds of mailbox {name}",
                mailbox["check-interval-seconds"],
            )

        triggers = mailbox.get("triggers", [])
        if not triggers:
            raise MissingTriggerError(f"no triggers configured for mailbox {name}")

        for j, trigger in enumerate(triggers):
            if not has_conditions(trigger):
                raise MissingTriggerError(
                    f"no trigger conditions specified in trigger {j} of mailbox {name}"
                )


def has_conditions(trigger: TriggerConfig) -> bool:
    """Return True if the trigger sets at least one match pattern."""
    return any(trigger.get(key) for key in PATTERN_KEYS)


def _is_int(value: Any) -> bool:
    # TOML booleans are ints in Python; reject them explicitly
    return isinstance(value, int) and not isinstance(value, bool)


def _check_interval(name: str, value: Any) -> None:
    if value is None:
        return
    if not _is_int(value) or value <= 0:
        raise InvalidIntervalError(f"{name} must be a positive integer, got {value!r}")


def effective_check_interval(config: MonitorConfig, mailbox: MailboxConfig) -> int:
    """Return the check interval for a mailbox.

    Uses the mailbox-specific value if set, otherwise the global value,
    otherwise DEFAULT_CHECK_INTERVAL.
    """
    interval = mailbox.get("check-interval-seconds")
    if interval is not None:
        return interval

    interval = config.get("check-interval-seconds")
    if interval is not None:
        return interval

    return DEFAULT_CHECK_INTERVAL


def effective_retry_interval(config: MonitorConfig) -> int:
    """Return the delay before retrying a failed connection attempt."""
    interval = config.get("imap", {}).get("retry-interval-seconds")
    if interval is not None:
        return interval
    return DEFAULT_RETRY_INTERVAL


def init_config(path: Path | None = None, *, overwrite: bool = False) -> bool:
    """Create a template config file.

    Args:
        path: Where to write. Defaults to CONFIG_FILE.
        overwrite: If True, overwrite an existing config file.

    Returns:
        True if config was created, False if it already existed.
    """
    if path is None:
        ensure_config_dir()
        path = CONFIG_FILE
    else:
        path.parent.mkdir(parents=True, exist_ok=True)

    if path.exists() and not overwrite:
        return False

    path.write_text(CONFIG_TEMPLATE)
    path.chmod(0o600)
    return True


def dump_config(config: MonitorConfig, *, redact: bool = True) -> str:
    """Render a configuration as TOML.

    Args:
        config: Configuration to render.
        redact: Replace the IMAP password with a marker.

    Returns:
        TOML text.
    """
    rendered = copy.deepcopy(config)
    imap = rendered.get("imap", {})
    if redact and "password" in imap:
        # Redact secret but indicate whether it's set
        imap["password"] = "***REDACTED***" if imap["password"] else "(not set)"
    return tomli_w.dumps(rendered)
