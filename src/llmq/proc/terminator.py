"""`llmq kill`: find the llmq process that holds a context open and stop it."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import psutil

from llmq.core.errors import DiscoveryError
from llmq.proc.inspector import ProcessInspector, ProcessRecord, PsutilInspector, canonical, program

log = logging.getLogger(__name__)


def _inspect(
    inspector: ProcessInspector,
    pid: int,
    own_exe: str,
    own_program: str,
) -> ProcessRecord | None:
    """Build a record for pid if it runs our executable and program, else None.

    The executable alone is not enough: for a console script it is the
    Python interpreter, shared with every other Python program.
    """
    exe = inspector.executable(pid)
    if not exe or canonical(exe) != own_exe:
        return None
    name = program(inspector.cmdline(pid))
    if name != own_program:
        log.debug("[kill] skipping %d: runs %r, not %r", pid, name, own_program)
        return None
    log.debug("[kill] found llmq process %d", pid)
    return ProcessRecord(
        pid=pid,
        exe=exe,
        program=name,
        open_files={canonical(p) for p in inspector.open_files(pid)},
    )


def locate_and_signal(
    target: Path | str,
    inspector: ProcessInspector | None = None,
    own_pid: int | None = None,
    own_exe: str | None = None,
    own_program: str | None = None,
) -> list[int]:
    """Signal every other llmq process that has ``target`` open.

    A candidate must run the same executable image and the same program
    (script or ``-m`` package) as this process. Candidates that exit
    mid-scan or deny access are skipped. The scan continues past the first
    match: the context lock should make a second holder impossible, so one
    is reported as a warning.

    Returns:
        The pids that were signalled.

    Raises:
        DiscoveryError: No process had the file open, or signalling failed.
    """
    inspector = inspector or PsutilInspector()
    own_pid = os.getpid() if own_pid is None else own_pid
    if own_exe is None:
        own_exe = inspector.executable(own_pid)
    own_exe = canonical(own_exe)
    if own_program is None:
        own_program = program(inspector.cmdline(own_pid))
    target = canonical(str(target))

    log.debug("[kill] searching for %s processes with %s open", own_program, target)
    signalled: list[int] = []
    for pid in inspector.pids():
        if pid == own_pid:
            continue
        try:
            record = _inspect(inspector, pid, own_exe, own_program)
        except (psutil.Error, OSError) as e:
            log.debug("[kill] skipping %d: %s", pid, e)
            continue
        if record is None or target not in record.open_files:
            continue

        if signalled:
            log.warning(
                "killing another llmq process (%d) for this context. this is unusual; "
                "locks usually prevent this from being possible",
                pid,
            )
        log.debug("[kill] attempting to kill %d", pid)
        try:
            inspector.terminate(pid)
        except (psutil.Error, OSError) as e:
            raise DiscoveryError(f"could not terminate process {pid} for context {target}: {e}") from e
        signalled.append(pid)

    if not signalled:
        raise DiscoveryError(f"could not locate llmq process for context {target}")
    return signalled
