"""Path constants and directory utilities for mailtrigger config.

Follows the XDG Base Directory specification:
- Config: ~/.config/mailtrigger/config.toml
"""

from pathlib import Path


# XDG-compliant config directory
CONFIG_DIR = Path.home() / ".config" / "mailtrigger"
CONFIG_FILE = CONFIG_DIR / "config.toml"


def ensure_config_dir() -> Path:
    """Create config directory with restricted permissions.

    The config file holds the IMAP password, so the directory is
    set to 700 (owner read/write/execute only).

    Returns the config directory path.
    """
    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    CONFIG_DIR.chmod(0o700)
    return CONFIG_DIR
