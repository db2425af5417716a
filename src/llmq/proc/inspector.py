"""Process table access behind a narrow, mockable interface."""

from __future__ import annotations

import os
import signal
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

import psutil


@dataclass
class ProcessRecord:
    """What one scan learned about a candidate process."""

    pid: int
    exe: str
    program: str = ""
    open_files: set[str] = field(default_factory=set)


@runtime_checkable
class ProcessInspector(Protocol):
    """Contract for process enumeration and signalling.

    Implementations raise ``psutil.Error`` or ``OSError`` when a candidate
    vanishes or cannot be inspected.
    """

    def pids(self) -> Iterable[int]:
        ...

    def executable(self, pid: int) -> str:
        ...

    def cmdline(self, pid: int) -> list[str]:
        ...

    def open_files(self, pid: int) -> list[str]:
        ...

    def terminate(self, pid: int) -> None:
        ...


class PsutilInspector:
    """ProcessInspector backed by psutil."""

    def __init__(self, sig: int = signal.SIGTERM) -> None:
        self._signal = sig

    def pids(self) -> Iterable[int]:
        return psutil.pids()

    def executable(self, pid: int) -> str:
        return psutil.Process(pid).exe()

    def cmdline(self, pid: int) -> list[str]:
        return psutil.Process(pid).cmdline()

    def open_files(self, pid: int) -> list[str]:
        return [f.path for f in psutil.Process(pid).open_files()]

    def terminate(self, pid: int) -> None:
        psutil.Process(pid).send_signal(self._signal)


def canonical(path: str) -> str:
    """Resolve symlinks and relative components."""
    return os.path.realpath(path)


# interpreter options that consume the following argument
_VALUE_OPTIONS = {"-W", "-X", "-Q"}


def program(cmdline: Sequence[str]) -> str:
    """Name the program a process runs.

    For a Python interpreter this is the basename of the script it was
    started with, the top-level package given to ``-m``, or ``-c`` for
    inline code. Any other executable is named by itself.
    """
    if not cmdline:
        return ""
    if not os.path.basename(cmdline[0]).startswith("python"):
        return os.path.basename(cmdline[0])

    args = list(cmdline[1:])
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "-m":
            return args[i + 1].split(".")[0] if i + 1 < len(args) else ""
        if arg.startswith("-m"):
            return arg[2:].split(".")[0]
        if arg.startswith("-c"):
            return "-c"
        if arg == "-":
            return "-"
        if arg.startswith("-"):
            i += 2 if arg in _VALUE_OPTIONS else 1
            continue
        return os.path.basename(arg)
    return ""
