from __future__ import annotations

from datetime import datetime
import re

from agentusage.dialogs import AUTH_SIGNATURE, signature
from agentusage.models import DialogKind, PercentKind, ProviderName, UsageEntry
from agentusage.providers.base import ProviderProfile, round_pct, strip_box
from agentusage.reset_time import parse_reset_minutes
from agentusage.terminal import ESC

KNOWN_LABELS = (
    "Current session",
    "Current week (all models)",
    "Current week (Sonnet only)",
    "Extra usage",
)
HEADER_PREFIXES = KNOWN_LABELS + ("Current week", "Current session")
LOOKAHEAD = 5
BAR_CHARS = " ·-█▉▊▋▌▍▎▏░▒▓"

PERCENT_USED_RE = re.compile(r"(\d+(?:\.\d+)?)\s*%\s*used", re.IGNORECASE)
RESET_RE = re.compile(r"((?:Resets?|Reses)\s*.+)")
SPENT_RE = re.compile(r"(\$[\d.,]+\s*/\s*\$[\d.,]+\s*spent)")
DATA_RE = re.compile(r"\d+(?:\.\d+)?%\s*used")

DIALOGS = (
    AUTH_SIGNATURE,
    signature(DialogKind.FIRST_RUN, ("let's get you set up", "your first time", "choose the text style")),
    signature(DialogKind.TRUST, ("do you trust the files in this folder", "trust this folder")),
    signature(DialogKind.UPDATE, ("update available", "new version"), dismiss_keys=(ESC,)),
)


def is_ready(text: str) -> bool:
    return ">" in text or "❯" in text or "Tips" in text


def _header_label(line: str) -> str | None:
    if not line.startswith(HEADER_PREFIXES):
        return None
    label = line
    pct = PERCENT_USED_RE.search(label)
    if pct:
        label = label[: pct.start()]
    return label.split(":", 1)[0].rstrip(BAR_CHARS).strip() or None


def _reset_text(line: str) -> str | None:
    m = RESET_RE.search(line)
    if not m:
        return None
    text = m.group(1).strip()
    if text.startswith("Reses"):
        text = "Resets" + text[len("Reses"):]
    return text


def parse_claude_output(text: str, now: datetime | None = None) -> list[UsageEntry]:
    """Parse the ``/usage`` screen.

    Each block starts with a header line (``Current session``, ``Current week
    (all models)`` ...) and carries ``N% used``, a ``Resets ...`` phrase and,
    for extra usage, a ``$x / $y spent`` figure within the next few lines.
    """
    lines = [strip_box(line) for line in text.splitlines()]
    entries: list[UsageEntry] = []

    for idx, line in enumerate(lines):
        label = _header_label(line)
        if label is None:
            continue

        # the header line itself may carry the numbers
        window = [line[len(label):]]
        for follow in lines[idx + 1 : idx + 1 + LOOKAHEAD]:
            if _header_label(follow) is not None:
                break
            window.append(follow)

        pct: str | None = None
        reset: str | None = None
        spent: str | None = None
        for candidate in window:
            if pct is None:
                m = PERCENT_USED_RE.search(candidate)
                pct = m.group(1) if m else None
            if reset is None:
                reset = _reset_text(candidate)
            if spent is None:
                m = SPENT_RE.search(candidate)
                spent = m.group(1) if m else None
        if pct is None:
            continue

        entries.append(
            UsageEntry.from_percent(
                label,
                round_pct(pct),
                PercentKind.USED,
                reset_info=reset or "",
                reset_minutes=parse_reset_minutes(reset, now),
                spent=spent,
            )
        )

    if not entries:
        entries = _parse_unlabelled(lines, now)
    return entries


def _parse_unlabelled(lines: list[str], now: datetime | None) -> list[UsageEntry]:
    """Fallback when headers were lost to redraws: pair bare percentages with the known labels in order."""
    joined = "\n".join(lines)
    percents = PERCENT_USED_RE.findall(joined)
    resets = [r for r in (_reset_text(line) for line in lines) if r]
    spent = SPENT_RE.search(joined)

    entries = []
    for idx, (label, pct) in enumerate(zip(KNOWN_LABELS, percents)):
        reset = resets[idx] if idx < len(resets) else None
        entries.append(
            UsageEntry.from_percent(
                label,
                round_pct(pct),
                PercentKind.USED,
                reset_info=reset or "",
                reset_minutes=parse_reset_minutes(reset, now),
                spent=spent.group(1) if spent and idx == 3 else None,
            )
        )
    return entries


PROFILE = ProviderProfile(
    name=ProviderName.CLAUDE,
    binary="claude",
    args=("--allowed-tools", ""),
    command="/usage",
    is_ready=is_ready,
    data_re=DATA_RE,
    parse=parse_claude_output,
    dialogs=DIALOGS,
    pre_command_keys=(ESC,),
    nudge_interval=0.85,
)
