from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Callable
import re

from agentusage.dialogs import DialogSignature
from agentusage.models import ProviderName, UsageEntry
from agentusage.terminal import ENTER

ANSI_ESCAPE_RE = re.compile(
    r"\x1b\][^\x07\x1b]*(?:\x07|\x1b\\)"  # OSC
    r"|\x1b[PX^_][^\x1b]*\x1b\\"  # DCS, SOS, PM, APC
    r"|\x1b\[[0-?]*[ -/]*[@-~]"  # CSI
    r"|\x1b[@-Z\\-_]"  # two-byte escapes
    r"|\x1b[=><()][0-9A-Za-z]?"
)
# cursor moves stand in for layout: forward moves are spaces, line moves are newlines
CURSOR_FORWARD_RE = re.compile(r"\x1b\[\d*C")
CURSOR_LINE_RE = re.compile(r"\x1b\[\d*(?:;\d*)?[HfBEF]")
CONTROL_RE = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
BOX_CHARS = "│┃║"

Parser = Callable[[str, "datetime | None"], list[UsageEntry]]


@dataclass(frozen=True)
class ProviderProfile:
    """Everything the generic driver needs to know about one CLI."""

    name: ProviderName
    binary: str
    command: str
    is_ready: Callable[[str], bool]
    data_re: re.Pattern[str]
    parse: Parser
    dialogs: tuple[DialogSignature, ...]
    args: tuple[str, ...] = ()
    start_marker: str | None = None
    confirm_key: str = ENTER
    pre_command_keys: tuple[str, ...] = ()
    nudge_interval: float | None = None
    idle_timeout: float | None = None

    def has_data(self, text: str) -> bool:
        return self.data_re.search(text) is not None

    @property
    def marker(self) -> str:
        return self.start_marker or self.command


def strip_ansi(text: str) -> str:
    return ANSI_ESCAPE_RE.sub("", text)


def clean_text(raw: bytes | str) -> str:
    """Decode terminal bytes and drop escapes and control characters, keeping newlines."""
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    text = CURSOR_FORWARD_RE.sub(" ", text)
    text = CURSOR_LINE_RE.sub("\n", text)
    text = strip_ansi(text)
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    return CONTROL_RE.sub("", text)


def strip_box(line: str) -> str:
    return line.strip().strip(BOX_CHARS).strip()


def round_pct(raw: str) -> int:
    return min(100, int(round(float(raw))))


def extract_window(text: str, marker: str) -> str:
    """Slice from the last echo of ``marker`` to the end; the whole text if it never echoed."""
    idx = text.rfind(marker)
    if idx < 0:
        return text
    return text[idx:]


def richer(first: list[UsageEntry], second: list[UsageEntry]) -> list[UsageEntry]:
    """Prefer the parse with more entries, then the one with more reset times."""

    def score(entries: list[UsageEntry]) -> tuple[int, int]:
        return len(entries), sum(1 for e in entries if e.reset_minutes is not None)

    return second if score(second) >= score(first) else first
