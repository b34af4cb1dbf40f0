"""Email monitor: polling engine, triggers, and command execution.

Usage:
    from mailtrigger.monitor import MonitorEngine

    engine = MonitorEngine(config)
    await engine.run()
"""

from .commands import CommandResult, CommandRunner, ShellCommandRunner, build_command_env
from .engine import MonitorEngine
from .imap import IMAPClientDialer, IMAPDialer, IMAPSession
from .message import FetchedMessage, extract_text_body
from .state import WatermarkStore
from .timer import AsyncioTimer, Timer
from .triggers import (
    CompiledMailbox,
    CompiledTrigger,
    compile_mailboxes,
    compile_trigger,
    group_by_interval,
)

__all__ = [
    "MonitorEngine",
    "CommandResult",
    "CommandRunner",
    "ShellCommandRunner",
    "build_command_env",
    "IMAPClientDialer",
    "IMAPDialer",
    "IMAPSession",
    "FetchedMessage",
    "extract_text_body",
    "WatermarkStore",
    "AsyncioTimer",
    "Timer",
    "CompiledMailbox",
    "CompiledTrigger",
    "compile_mailboxes",
    "compile_trigger",
    "group_by_interval",
]
