"""
Command invocation strategies.

External programs are started either directly or through the platform command
interpreter. The strategy is selected once per interpreter process so that
call sites never need to branch on the operating system.
"""

import logging
import os
import shlex
from pathlib import PurePath
from typing import List, Optional, Sequence

logger = logging.getLogger(__name__)


class CommandInvoker:
    """
    Builds the argv used to start an external program.

    Args passed to `build_argv` are never mutated.
    """

    name = "direct"

    def script_name(self, program: str) -> str:
        """Return the launcher name for a script-style tool (e.g. node shims)."""
        return program

    def build_argv(self, program: str, args: Sequence[str], interpreted: bool = True) -> List[str]:
        """
        Build the argv for a program invocation.

        Args:
            program: Program name or path
            args: Arguments passed to the program
            interpreted: Route through the command interpreter where the host needs it

        Returns:
            Complete argv list, program first
        """
        return [str(program), *[str(arg) for arg in args]]

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class DirectInvoker(CommandInvoker):
    """POSIX hosts: executables and scripts are started directly."""


class WindowsShellInvoker(CommandInvoker):
    """
    Windows hosts: scripts are started through `cmd.exe /c`.

    Node-installed tools ship `.cmd` launchers which CreateProcess cannot
    execute on its own.
    """

    name = "cmd"
    script_suffix = ".cmd"

    def __init__(self, interpreter: str = "cmd.exe"):
        self.interpreter = interpreter

    def script_name(self, program: str) -> str:
        if PurePath(program).suffix:
            return program
        return f"{program}{self.script_suffix}"

    def build_argv(self, program: str, args: Sequence[str], interpreted: bool = True) -> List[str]:
        argv = super().build_argv(program, args)
        if not interpreted:
            return argv
        return [self.interpreter, "/c", *argv]


_INVOKER: Optional[CommandInvoker] = None


def select_invoker(os_name: Optional[str] = None) -> CommandInvoker:
    """Return the invocation strategy for an `os.name` value."""
    if (os_name or os.name) == "nt":
        return WindowsShellInvoker()
    return DirectInvoker()


def get_invoker() -> CommandInvoker:
    """
    Get the process-wide invocation strategy, selecting it on first use.

    Returns:
        The singleton CommandInvoker
    """
    global _INVOKER
    if _INVOKER is None:
        _INVOKER = select_invoker()
        logger.debug(f"Using {_INVOKER!r} to start external programs")
    return _INVOKER


def set_invoker(invoker: Optional[CommandInvoker]) -> None:
    """Override the invocation strategy; None restores automatic selection."""
    global _INVOKER
    _INVOKER = invoker


def format_command(argv: Sequence[str]) -> str:
    """Render an argv for log messages."""
    return shlex.join(str(arg) for arg in argv)
