from __future__ import annotations

from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from typing import Callable, Iterable
import logging
import shutil
import signal
import threading
import time

from agentusage.config import UsageConfig
from agentusage.driver import SessionDriver, SessionFactory, open_pty_session
from agentusage.errors import AgentUsageError, UsageTimeout
from agentusage.models import AggregatedResults, ProviderName, UsageData
from agentusage.providers import get_profile
from agentusage.registry import SessionRegistry
from agentusage.terminal import GRACE_PERIOD

logger = logging.getLogger(__name__)

WAIT_SLICE = 0.2
# room for the driver's own deadline plus a graceful then forced stop
CEILING_SLACK = 2 * GRACE_PERIOD + 3.0


class Orchestrator:
    """Runs provider drivers concurrently and owns cleanup of every session they start.

    Use as a context manager so the cleanup sweep also runs when the caller
    fails::

        with Orchestrator(UsageConfig(timeout=30)) as orch:
            results = orch.run_all()
    """

    def __init__(
        self,
        config: UsageConfig,
        registry: SessionRegistry | None = None,
        binaries: dict[ProviderName, str] | None = None,
        session_factory: SessionFactory = open_pty_session,
        which: Callable[[str], str | None] = shutil.which,
    ) -> None:
        self.config = config
        self.registry = registry if registry is not None else SessionRegistry()
        self.cancel = threading.Event()
        self._binaries = dict(binaries or {})
        self._session_factory = session_factory
        self._which = which
        self._interrupted = threading.Event()
        self._closed = False
        self._previous_handlers: dict[int, object] = {}
        self._listener = threading.Thread(target=self._listen, name="interrupt-listener", daemon=True)
        self._listener.start()

    def __enter__(self) -> Orchestrator:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def driver(self, name: ProviderName | str) -> SessionDriver:
        name = ProviderName(name)
        return SessionDriver(
            get_profile(name, self._binaries.get(name)),
            self.config,
            registry=self.registry,
            cancel=self.cancel,
            session_factory=self._session_factory,
            which=self._which,
        )

    def run_provider(self, name: ProviderName | str) -> UsageData:
        """Run one provider. Raises the provider's :class:`AgentUsageError` on failure."""
        return self.driver(name).run()

    def run_all(self, names: Iterable[ProviderName | str] | None = None) -> AggregatedResults:
        selected = list(dict.fromkeys(ProviderName(n) for n in (list(ProviderName) if names is None else names)))
        results = AggregatedResults()
        if not selected:
            return results

        ceiling = time.monotonic() + self.config.timeout + CEILING_SLACK
        with ThreadPoolExecutor(max_workers=len(selected), thread_name_prefix="provider") as pool:
            futures: dict[Future, ProviderName] = {pool.submit(self.run_provider, name): name for name in selected}
            pending = set(futures)
            while pending:
                done, pending = wait(pending, timeout=WAIT_SLICE, return_when=FIRST_COMPLETED)
                for future in done:
                    self._record(results, futures[future], future)
                if pending and time.monotonic() >= ceiling:
                    for future in pending:
                        name = futures[future]
                        exc = UsageTimeout(f"{name.value} did not finish within {self.config.timeout:g}s")
                        results.add_failure(name, str(exc), exc.exit_code)
                    # stuck drivers see EOF once their sessions are gone
                    self.registry.sweep()
                    break
        return results

    def _record(self, results: AggregatedResults, name: ProviderName, future: Future) -> None:
        exc = future.exception()
        if exc is None:
            data = future.result()
            logger.debug("%s: %d entries", name.value, len(data.entries))
            results.add_success(data)
        elif isinstance(exc, AgentUsageError):
            logger.debug("%s failed (%s): %s", name.value, exc.kind, exc)
            results.add_failure(name, str(exc), exc.exit_code)
        else:
            logger.error("%s failed unexpectedly", name.value, exc_info=exc)
            results.add_failure(name, f"unexpected error: {exc}", 1)

    def cleanup(self) -> int:
        """Terminate every tracked session. Safe to call on an empty registry."""
        stopped = self.registry.sweep()
        if stopped:
            logger.info("stopped %d leftover session(s)", stopped)
        return stopped

    def interrupt(self) -> None:
        """Request shutdown; the listener thread does the actual work."""
        self._interrupted.set()

    @property
    def interrupted(self) -> bool:
        return self.cancel.is_set()

    def install_signal_handlers(self) -> None:
        """Route SIGINT/SIGTERM to :meth:`interrupt`. Must be called from the main thread."""
        for sig in (signal.SIGINT, signal.SIGTERM):
            self._previous_handlers[sig] = signal.signal(sig, self._on_signal)

    def _on_signal(self, signum, frame) -> None:
        self._interrupted.set()

    def _listen(self) -> None:
        self._interrupted.wait()
        if self._closed:
            return
        logger.warning("interrupt received, stopping all provider sessions")
        self.cancel.set()
        self.cleanup()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for sig, handler in self._previous_handlers.items():
            signal.signal(sig, handler)
        self._previous_handlers.clear()
        self.cleanup()
        # release the listener if no interrupt ever came
        self._interrupted.set()
