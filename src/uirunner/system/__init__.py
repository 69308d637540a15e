"""
System interaction utilities.

This module provides the host-facing building blocks of a run:

- Command invocation strategies (direct or through the command interpreter)
- Process handles with streamed output and subtree-safe termination
- Host specific default paths for the emulator tooling
"""

from .commands import (
    CommandInvoker,
    DirectInvoker,
    WindowsShellInvoker,
    format_command,
    get_invoker,
    select_invoker,
    set_invoker,
)
from .host import HostOS, current_host, player_log_path
from .processes import (
    STDERR,
    STDOUT,
    ProcessExit,
    ProcessHandle,
    ProcessConstants,
    child_environment,
    run_and_capture,
    terminate_process_tree,
)

__all__ = [
    # Commands
    "CommandInvoker",
    "DirectInvoker",
    "WindowsShellInvoker",
    "format_command",
    "get_invoker",
    "select_invoker",
    "set_invoker",
    # Host
    "HostOS",
    "current_host",
    "player_log_path",
    # Processes
    "STDERR",
    "STDOUT",
    "ProcessExit",
    "ProcessHandle",
    "ProcessConstants",
    "child_environment",
    "run_and_capture",
    "terminate_process_tree",
]
