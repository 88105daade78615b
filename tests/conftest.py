"""Scripted stand-ins for a provider CLI running in a terminal."""

from __future__ import annotations

import time
from pathlib import Path

from agentusage.errors import SpawnFailure


class FakeSession:
    """Emits ``banner`` first, then whatever ``replies`` maps the written text to.

    Usage:
        session = FakeSession(b"? for shortcuts", {"/status": b"5h limit: 97% left"})
    """

    def __init__(self, banner: bytes = b"", replies: dict[str, bytes] | None = None, eof: bool = False) -> None:
        self._pending: list[bytes] = [banner] if banner else []
        self.replies = replies or {}
        self.eof = eof
        self.writes: list[str] = []
        self.terminate_calls = 0
        self.pid = None

    def write(self, data: str | bytes) -> None:
        if self.terminate_calls:
            raise SpawnFailure("session is already closed")
        text = data.decode() if isinstance(data, bytes) else data
        self.writes.append(text)
        reply = self.replies.get(text)
        if reply:
            self._pending.append(reply)

    def read_available(self, max_wait: float) -> tuple[bytes, bool]:
        if self._pending:
            return self._pending.pop(0), False
        if self.eof or self.terminate_calls:
            return b"", True
        time.sleep(min(max_wait, 0.01))
        return b"", False

    def terminate(self) -> None:
        self.terminate_calls += 1


class FakeFactory:
    """Session factory handing out prepared sessions keyed by binary name."""

    def __init__(self, sessions: dict[str, FakeSession]) -> None:
        self.sessions = sessions
        self.opened: list[str] = []

    def __call__(self, binary: str, args: tuple[str, ...], directory: Path) -> FakeSession:
        name = Path(binary).name
        self.opened.append(name)
        return self.sessions[name]


def fake_which(*missing: str):
    def which(binary: str) -> str | None:
        return None if binary in missing else f"/fake/bin/{binary}"

    return which
