"""Drive one provider CLI from launch to parsed usage entries."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Callable, Protocol
import logging
import shutil
import threading
import time

from agentusage.config import UsageConfig
from agentusage.dialogs import DialogMatch, classify, resolve
from agentusage.errors import (
    AgentUsageError,
    DialogDetected,
    Interrupted,
    ParseFailure,
    SpawnFailure,
    ToolNotFound,
    UsageTimeout,
)
from agentusage.models import UsageData, UsageEntry
from agentusage.providers.base import ProviderProfile, clean_text, extract_window, richer
from agentusage.registry import SessionRegistry
from agentusage.terminal import PtySession

logger = logging.getLogger(__name__)

POLL_INTERVAL = 0.1
KEY_DELAY = 0.1
COMMAND_CONFIRM_DELAY = 0.5
READY_QUIET = 0.3
READY_SETTLE_MAX = 2.0
DATA_QUIET = 0.5
DATA_SETTLE_MAX = 2.0
MAX_BUFFER_BYTES = 1_000_000
DIALOG_TAIL_CHARS = 2000
MAX_DIALOG_DISMISSALS = 5
DEBUG_TAIL_CHARS = 2000


class Session(Protocol):
    def write(self, data: str | bytes) -> None: ...

    def read_available(self, max_wait: float) -> tuple[bytes, bool]: ...

    def terminate(self) -> None: ...


SessionFactory = Callable[[str, tuple[str, ...], Path], Session]


class DriverState(str, Enum):
    LAUNCHING = "launching"
    AWAITING_READY = "awaiting-ready"
    COMMAND_SENT = "command-sent"
    POLLING = "polling"
    EXTRACTING = "extracting"
    DONE = "done"
    FAILED = "failed"


def open_pty_session(binary: str, args: tuple[str, ...], directory: Path) -> PtySession:
    return PtySession.open(binary, args, directory)


class SessionDriver:
    """Runs a single provider through the launch / ready / command / poll / extract states.

    The session is always terminated before :meth:`run` returns or raises.
    """

    def __init__(
        self,
        profile: ProviderProfile,
        config: UsageConfig,
        registry: SessionRegistry | None = None,
        cancel: threading.Event | None = None,
        session_factory: SessionFactory = open_pty_session,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.profile = profile
        self.config = config
        self.registry = registry if registry is not None else SessionRegistry()
        self.cancel = cancel if cancel is not None else threading.Event()
        self._session_factory = session_factory
        self._which = which

        self.state = DriverState.LAUNCHING
        self.dismissed: list[DialogMatch] = []
        self._buffer = bytearray()
        self._dialog_from = 0
        self._command_from = 0
        self._deadline = 0.0

    @property
    def name(self) -> str:
        return self.profile.name.value

    def run(self) -> UsageData:
        self._transition(DriverState.LAUNCHING)
        binary = self._which(self.profile.binary)
        if binary is None:
            self._transition(DriverState.FAILED)
            raise ToolNotFound(self.profile.binary)

        self._deadline = time.monotonic() + self.config.timeout
        try:
            session = self._session_factory(binary, self.profile.args, self.config.working_directory())
        except AgentUsageError:
            self._transition(DriverState.FAILED)
            raise

        self.registry.register(session)
        try:
            entries = self._drive(session)
        except AgentUsageError as exc:
            self._failed()
            if self.cancel.is_set() and not isinstance(exc, Interrupted):
                # the sweep closed the session under us
                raise Interrupted() from exc
            raise
        except BaseException:
            self._failed()
            raise
        finally:
            session.terminate()
            self.registry.unregister(session)

        self._transition(DriverState.DONE)
        return UsageData(provider=self.profile.name, entries=entries)

    def text(self, start: int = 0) -> str:
        return clean_text(bytes(self._buffer[start:]))

    def _drive(self, session: Session) -> list[UsageEntry]:
        self._transition(DriverState.AWAITING_READY)
        self._await_ready(session)

        self._transition(DriverState.COMMAND_SENT)
        self._send_command(session)

        self._transition(DriverState.POLLING)
        early = self._poll_for_data(session)

        self._transition(DriverState.EXTRACTING)
        self._settle(session, DATA_QUIET, DATA_SETTLE_MAX)
        entries = richer(early, self._parse())
        if not entries:
            raise ParseFailure(
                f"{self.name} printed usage data but no entries could be parsed; its output format may have changed"
            )
        return entries

    def _failed(self) -> None:
        self._transition(DriverState.FAILED)
        logger.debug("%s: last output:\n%s", self.name, self.text()[-DEBUG_TAIL_CHARS:])

    def _transition(self, state: DriverState) -> None:
        if state != self.state:
            logger.debug("%s: %s -> %s", self.name, self.state.value, state.value)
        self.state = state

    def _check(self, waiting_for: str) -> None:
        if self.cancel.is_set():
            raise Interrupted()
        if time.monotonic() >= self._deadline:
            raise UsageTimeout(f"Timed out after {self.config.timeout:g}s waiting for {self.name} {waiting_for}")

    def _read(self, session: Session) -> tuple[bool, bool]:
        wait = max(0.0, min(POLL_INTERVAL, self._deadline - time.monotonic()))
        chunk, eof = session.read_available(wait)
        if chunk:
            self._buffer.extend(chunk)
            overflow = len(self._buffer) - MAX_BUFFER_BYTES
            if overflow > 0:
                del self._buffer[:overflow]
                self._dialog_from = max(0, self._dialog_from - overflow)
                self._command_from = max(0, self._command_from - overflow)
        return bool(chunk), eof

    def _send_keys(self, session: Session, keys: tuple[str, ...]) -> None:
        for key in keys:
            session.write(key)
            time.sleep(KEY_DELAY)

    def _handle_dialog(self, session: Session) -> bool:
        tail = self.text(self._dialog_from)[-DIALOG_TAIL_CHARS:]
        match = classify(tail, self.profile.dialogs)
        if match is None:
            return False
        if len(self.dismissed) >= MAX_DIALOG_DISMISSALS:
            raise DialogDetected(
                match.kind,
                f"{self.name} kept showing a {match.kind.value} dialog after {len(self.dismissed)} dismissals",
            )
        keys = resolve(match, self.config.approval_policy, self.profile.name, self.profile.binary)
        logger.debug("%s: %s dialog, sending %r", self.name, match.kind.value, keys)
        self._send_keys(session, keys)
        self.dismissed.append(match)
        # only output after the dismissal counts from here on
        self._dialog_from = len(self._buffer)
        return True

    def _await_ready(self, session: Session) -> None:
        last_output = time.monotonic()
        while True:
            self._check("its ready prompt")
            got, eof = self._read(session)
            now = time.monotonic()
            if got:
                last_output = now
            if self._handle_dialog(session):
                continue
            if self.profile.is_ready(self.text(self._dialog_from)):
                break
            if eof:
                raise SpawnFailure(f"{self.name} exited before showing its prompt")
            idle = self.profile.idle_timeout
            if idle is not None and now - last_output >= idle:
                raise UsageTimeout(f"{self.name} produced no output for {idle:g}s during startup and appears stuck")
        self._settle(session, READY_QUIET, READY_SETTLE_MAX)

    def _send_command(self, session: Session) -> None:
        self._send_keys(session, self.profile.pre_command_keys)
        self._command_from = len(self._buffer)
        logger.debug("%s: sending %r", self.name, self.profile.command)
        session.write(self.profile.command)
        time.sleep(COMMAND_CONFIRM_DELAY)
        session.write(self.profile.confirm_key)

    def _poll_for_data(self, session: Session) -> list[UsageEntry]:
        last_nudge = time.monotonic()
        while True:
            self._check("usage data")
            _, eof = self._read(session)
            if self.profile.has_data(self.text(self._command_from)):
                return self._parse()
            if self._handle_dialog(session):
                continue
            if eof:
                raise SpawnFailure(f"{self.name} exited before producing usage data")
            interval = self.profile.nudge_interval
            if interval is not None and time.monotonic() - last_nudge >= interval:
                session.write(self.profile.confirm_key)
                last_nudge = time.monotonic()

    def _settle(self, session: Session, quiet: float, limit: float) -> None:
        """Keep reading until output pauses for ``quiet`` seconds, ``limit`` passes, or the deadline hits."""
        start = last = time.monotonic()
        while True:
            if self.cancel.is_set():
                raise Interrupted()
            now = time.monotonic()
            if now - start >= limit or now >= self._deadline:
                return
            got, eof = self._read(session)
            now = time.monotonic()
            if got:
                last = now
            elif eof or now - last >= quiet:
                return

    def _parse(self) -> list[UsageEntry]:
        text = self.text(self._command_from)
        entries = self.profile.parse(extract_window(text, self.profile.marker), None)
        if not entries:
            entries = self.profile.parse(text, None)
        return entries
