from __future__ import annotations

from datetime import datetime
import re

from agentusage.dialogs import AUTH_SIGNATURE, signature
from agentusage.models import DialogKind, PercentKind, ProviderName, UsageEntry
from agentusage.providers.base import ProviderProfile, round_pct, strip_box
from agentusage.reset_time import parse_reset_minutes
from agentusage.terminal import ESC

# "gemini-2.5-pro   12   87.5% (Resets in 20h 14m)"
MODEL_ROW_RE = re.compile(
    r"^(gemini-[\w.-]+)\s+(\d+|-)\s+(\d+(?:\.\d+)?)\s*%\s*\(\s*Resets?\s+in\s+(.+?)\s*\)",
    re.IGNORECASE,
)
DATA_RE = re.compile(r"\d+(?:\.\d+)?%\s*\(Resets?\b", re.IGNORECASE)
READY_PHRASES = ("gemini.md", "mcp servers", "gemini >", "what can i help", "type your message")
IDLE_TIMEOUT = 30.0

DIALOGS = (
    AUTH_SIGNATURE,
    signature(DialogKind.FIRST_RUN, ("select a theme", "choose a theme", "color theme")),
    signature(DialogKind.TRUST, ("do you trust this folder",)),
    signature(DialogKind.UPDATE, ("update available", "new version"), excludes=("extension",), dismiss_keys=(ESC,)),
    signature(DialogKind.TERMS, ("terms",), ("accept", "agree")),
)


def is_ready(text: str) -> bool:
    lowered = text.lower()
    if any(phrase in lowered for phrase in READY_PHRASES):
        return True
    for line in text.splitlines():
        stripped = strip_box(line)
        if stripped == ">" or stripped.startswith("> "):
            return True
    return False


def parse_gemini_output(text: str, now: datetime | None = None) -> list[UsageEntry]:
    entries: list[UsageEntry] = []
    for raw_line in text.splitlines():
        m = MODEL_ROW_RE.match(strip_box(raw_line))
        if not m:
            continue
        model, requests, pct, reset = m.groups()
        reset_info = f"Resets in {reset}"
        entries.append(
            UsageEntry.from_percent(
                model,
                round_pct(pct),
                PercentKind.LEFT,
                reset_info=reset_info,
                reset_minutes=parse_reset_minutes(reset_info, now),
                requests=None if requests == "-" else requests,
            )
        )
    return entries


PROFILE = ProviderProfile(
    name=ProviderName.GEMINI,
    binary="gemini",
    command="/stats session",
    is_ready=is_ready,
    data_re=DATA_RE,
    parse=parse_gemini_output,
    dialogs=DIALOGS,
    idle_timeout=IDLE_TIMEOUT,
)
