"""Pseudo-terminal session around one provider child process."""

from __future__ import annotations

from pathlib import Path
from typing import Mapping
import logging
import os
import signal
import threading
import time

import pexpect

from agentusage.errors import SpawnFailure

logger = logging.getLogger(__name__)

ENTER = "\r"
TAB = "\t"
ESC = "\x1b"
UP = "\x1b[A"
DOWN = "\x1b[B"
RIGHT = "\x1b[C"
LEFT = "\x1b[D"

ROWS = 50
COLS = 200
READ_SIZE = 4096
MAX_READ_PER_CALL = 256 * 1024
GRACE_PERIOD = 2.0
EXIT_POLL_INTERVAL = 0.1

ENV_DEFAULTS = {
    "TERM": "xterm-256color",
    "COLORTERM": "truecolor",
    "LANG": "en_US.UTF-8",
    "CI": "0",
}

# (query the child writes, reply a real terminal would send back)
TERMINAL_QUERIES = (
    (b"\x1b[6n", b"\x1b[1;1R"),
    (b"\x1b[c", b"\x1b[?1;2c"),
    (b"\x1b[0c", b"\x1b[?1;2c"),
    (b"\x1b[5n", b"\x1b[0n"),
)
QUERY_TAIL = max(len(q) for q, _ in TERMINAL_QUERIES) - 1


def build_env(directory: Path, base: Mapping[str, str] | None = None) -> dict[str, str]:
    env = dict(os.environ if base is None else base)
    for key, value in ENV_DEFAULTS.items():
        env.setdefault(key, value)
    env["PWD"] = str(directory)
    return env


def find_terminal_queries(tail: bytes, chunk: bytes) -> tuple[list[bytes], bytes]:
    """Replies owed for queries completed by ``chunk``, plus the tail to carry forward.

    ``tail`` holds the last few bytes of the previous chunk so a query split
    across two reads is still answered exactly once.
    """
    window = tail + chunk
    replies: list[bytes] = []
    for query, reply in TERMINAL_QUERIES:
        owed = window.count(query) - tail.count(query)
        replies.extend([reply] * owed)
    return replies, window[-QUERY_TAIL:]


class PtySession:
    def __init__(self, child: pexpect.spawn, label: str) -> None:
        self._child = child
        self.label = label
        self._lock = threading.Lock()
        self._terminated = False
        self._query_tail = b""

    @classmethod
    def open(
        cls,
        binary: str,
        args: tuple[str, ...] | list[str] = (),
        directory: Path | None = None,
        dimensions: tuple[int, int] = (ROWS, COLS),
    ) -> PtySession:
        directory = directory or Path.cwd()
        logger.debug("spawning %s %s in %s", binary, " ".join(repr(a) for a in args), directory)
        try:
            child = pexpect.spawn(
                binary,
                list(args),
                cwd=str(directory),
                env=build_env(directory),
                dimensions=dimensions,
                encoding=None,
            )
        except (pexpect.ExceptionPexpect, OSError) as exc:
            raise SpawnFailure(f"failed to start {binary}: {exc}") from exc
        return cls(child, binary)

    @property
    def pid(self) -> int | None:
        return self._child.pid

    @property
    def closed(self) -> bool:
        return self._terminated

    def is_alive(self) -> bool:
        if self._terminated:
            return False
        return self._child.isalive()

    def write(self, data: str | bytes) -> None:
        payload = data.encode("utf-8") if isinstance(data, str) else data
        if self._terminated:
            raise SpawnFailure(f"{self.label} session is already closed")
        try:
            self._child.send(payload)
        except OSError as exc:
            raise SpawnFailure(f"failed to write to {self.label}: {exc}") from exc

    def read_available(self, max_wait: float) -> tuple[bytes, bool]:
        """Whatever the child printed within ``max_wait`` seconds, and whether it hit EOF.

        Waits at most ``max_wait`` for the first chunk, then drains what is
        already buffered without waiting again.
        """
        if self._terminated:
            return b"", True

        chunks: list[bytes] = []
        total = 0
        eof = False
        wait = max(0.0, max_wait)
        while total < MAX_READ_PER_CALL:
            try:
                chunk = self._child.read_nonblocking(READ_SIZE, timeout=wait)
            except pexpect.TIMEOUT:
                break
            except pexpect.EOF:
                eof = True
                break
            except (ValueError, OSError):
                # closed by a concurrent terminate()
                eof = True
                break
            if not chunk:
                break
            chunks.append(chunk)
            total += len(chunk)
            self._answer_queries(chunk)
            wait = 0
        return b"".join(chunks), eof

    def resize(self, rows: int, cols: int) -> None:
        if not self._terminated:
            self._child.setwinsize(rows, cols)

    def _answer_queries(self, chunk: bytes) -> None:
        replies, self._query_tail = find_terminal_queries(self._query_tail, chunk)
        for reply in replies:
            logger.debug("%s: answering terminal query with %r", self.label, reply)
            try:
                self._child.send(reply)
            except OSError:
                logger.debug("%s: child went away before query reply", self.label)
                return

    def terminate(self) -> None:
        """Stop the child and release the terminal. Safe to call more than once."""
        with self._lock:
            if self._terminated:
                return
            self._terminated = True
            try:
                self._stop_child()
            finally:
                try:
                    self._child.close(force=True)
                except pexpect.ExceptionPexpect as exc:
                    logger.warning("%s: could not close terminal cleanly: %s", self.label, exc)

    def _stop_child(self) -> None:
        if not self._child.isalive():
            logger.debug("%s: child already exited", self.label)
            return
        try:
            self._child.send(b"/exit\n")
        except OSError:
            logger.debug("%s: could not send /exit", self.label)
        self._signal_group(signal.SIGTERM)
        if self._wait_exit(GRACE_PERIOD):
            logger.debug("%s: child exited after SIGTERM", self.label)
            return
        logger.debug("%s: child ignored SIGTERM, killing", self.label)
        self._signal_group(signal.SIGKILL)
        self._wait_exit(GRACE_PERIOD)

    def _signal_group(self, sig: signal.Signals) -> None:
        pid = self._child.pid
        if pid is None:
            return
        try:
            os.killpg(pid, sig)
        except ProcessLookupError:
            return
        except PermissionError:
            self._child.kill(sig)

    def _wait_exit(self, grace: float) -> bool:
        deadline = time.monotonic() + grace
        while time.monotonic() < deadline:
            if not self._child.isalive():
                return True
            time.sleep(EXIT_POLL_INTERVAL)
        return not self._child.isalive()
