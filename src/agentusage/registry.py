from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Protocol
import json
import logging
import os
import signal
import threading
import time
import weakref

logger = logging.getLogger(__name__)

STATE_PATH = Path.home() / ".local/state/agentusage/sessions.json"
STALE_KILL_DELAY = 0.3


class Terminable(Protocol):
    def terminate(self) -> None: ...


class SessionRegistry:
    """Weakly tracks live sessions so an interrupt or ``--cleanup`` can stop them all.

    Sessions stay owned by their drivers; dropping the last strong reference
    drops the entry here too. With ``state_path`` set, the process-group ids
    are also written to disk so a later ``--cleanup`` run can stop children a
    crashed process left behind.
    """

    def __init__(self, state_path: Path | None = None) -> None:
        self._lock = threading.Lock()
        self._sessions: weakref.WeakSet[Terminable] = weakref.WeakSet()
        self.state_path = state_path

    def register(self, session: Terminable) -> None:
        with self._lock:
            self._sessions.add(session)
            pid = getattr(session, "pid", None)
            if self.state_path is not None and pid:
                records = _read_records(self.state_path)
                records[pid] = _start_time(pid)
                _write_records(self.state_path, records)

    def unregister(self, session: Terminable) -> None:
        with self._lock:
            self._sessions.discard(session)
            pid = getattr(session, "pid", None)
            if self.state_path is not None and pid:
                records = _read_records(self.state_path)
                records.pop(pid, None)
                _write_records(self.state_path, records)

    def live(self) -> list[Terminable]:
        with self._lock:
            return list(self._sessions)

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def sweep(self) -> int:
        """Terminate every tracked session and empty the registry. Returns how many were stopped."""
        with self._lock:
            sessions = list(self._sessions)
            self._sessions.clear()
        if not sessions:
            return 0

        logger.debug("sweeping %d live session(s)", len(sessions))
        with ThreadPoolExecutor(max_workers=len(sessions), thread_name_prefix="sweep") as pool:
            futures = [pool.submit(session.terminate) for session in sessions]
        for future in futures:
            exc = future.exception()
            if exc is not None:
                logger.warning("session cleanup failed: %s", exc)

        if self.state_path is not None:
            with self._lock:
                records = _read_records(self.state_path)
                for session in sessions:
                    records.pop(getattr(session, "pid", None), None)
                _write_records(self.state_path, records)
        return len(sessions)

    def sweep_stale(self) -> int:
        """Stop process groups recorded on disk by earlier runs, then run :meth:`sweep`.

        A recorded group is only signalled while its leader still has the
        start time captured at registration; a reused pid belongs to someone
        else and is left alone.
        """
        stopped = self.sweep()
        if self.state_path is None:
            return stopped

        with self._lock:
            records = _read_records(self.state_path)
            _write_records(self.state_path, {})
        leaders = [pid for pid, started in records.items() if _is_same_leader(pid, started)]
        for pid in leaders:
            _kill_group(pid, signal.SIGTERM)
        if leaders:
            time.sleep(STALE_KILL_DELAY)
        for pid in leaders:
            if _is_same_leader(pid, records[pid]):
                _kill_group(pid, signal.SIGKILL)
        if leaders:
            logger.debug("stopped %d stale process group(s)", len(leaders))
        return stopped + len(leaders)


def _read_records(path: Path) -> dict[int, str | None]:
    if not path.exists():
        return {}
    try:
        raw = json.loads(path.read_text())
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("ignoring unreadable session state %s: %s", path, exc)
        return {}
    records: dict[int, str | None] = {}
    for item in raw.get("sessions", []) if isinstance(raw, dict) else []:
        if isinstance(item, dict) and isinstance(item.get("pid"), int):
            started = item.get("started")
            records[item["pid"]] = started if isinstance(started, str) else None
    return records


def _write_records(path: Path, records: dict[int, str | None]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    sessions = [{"pid": pid, "started": started} for pid, started in records.items()]
    path.write_text(json.dumps({"sessions": sessions}, indent=2))


def _start_time(pid: int) -> str | None:
    """Kernel start time of ``pid`` in clock ticks since boot, or None where /proc is unavailable."""
    try:
        stat = Path(f"/proc/{pid}/stat").read_text()
    except OSError:
        return None
    # the command name may contain spaces and parens; fields resume after the last ')'
    fields = stat.rsplit(")", 1)[-1].split()
    return fields[19] if len(fields) > 19 else None


def _is_same_leader(pid: int, started: str | None) -> bool:
    if started is None:
        logger.debug("skipping pid %d: no start time recorded", pid)
        return False
    # provider children are spawned as session leaders, so pgid == pid
    try:
        if os.getpgid(pid) != pid:
            return False
    except ProcessLookupError:
        return False
    return _start_time(pid) == started


def _kill_group(pid: int, sig: signal.Signals) -> None:
    try:
        os.killpg(pid, sig)
    except (ProcessLookupError, PermissionError) as exc:
        logger.debug("could not signal process group %d: %s", pid, exc)
