from __future__ import annotations

from datetime import datetime
import re

from agentusage.dialogs import AUTH_SIGNATURE, signature
from agentusage.models import DialogKind, PercentKind, ProviderName, UsageEntry
from agentusage.providers.base import ProviderProfile, round_pct, strip_box
from agentusage.reset_time import parse_reset_minutes
from agentusage.terminal import DOWN, ENTER

# "5h limit: [██████░░] 97% left (resets 11:07)" or "5h limit: 97% left · resets 11:07"
LIMIT_RE = re.compile(
    r"^([\w][\w\s.()-]*?)\s*limit:\s*(?:\[[^\]]*\]\s*)?(\d+(?:\.\d+)?)\s*%\s*(left|used)\b(.*)$",
    re.IGNORECASE,
)
SECTION_RE = re.compile(r"^([\w][\w\s.()-]+?)\s*limit:\s*$", re.IGNORECASE)
RESETS_RE = re.compile(r"resets?\s*(.+?)[\s)]*$", re.IGNORECASE)
DATA_RE = re.compile(r"\d+(?:\.\d+)?%\s*(?:left|used)")
KEEPS_SECTION = ("[", "╭", "╰", ">")

DIALOGS = (
    AUTH_SIGNATURE,
    signature(DialogKind.UPDATE, ("update available",), ("codex",), dismiss_keys=(DOWN, ENTER)),
    signature(DialogKind.TERMS, ("terms",), ("accept",)),
    signature(DialogKind.TRUST, ("do you trust the contents",)),
    signature(DialogKind.TRUST, ("trust",), ("directory",)),
    signature(DialogKind.SANDBOX, ("sandbox",), ("trust",)),
)


def is_ready(text: str) -> bool:
    return "? for shortcuts" in text


def parse_codex_output(text: str, now: datetime | None = None) -> list[UsageEntry]:
    """Parse the ``/status`` card.

    Limits nested under a model section header (``GPT-5-Codex-Mini limit:``)
    get the section name as a label prefix.
    """
    entries: list[UsageEntry] = []
    section: str | None = None

    for raw_line in text.splitlines():
        line = strip_box(raw_line)
        if not line:
            continue

        m = SECTION_RE.match(line)
        if m:
            section = m.group(1).strip()
            continue

        m = LIMIT_RE.match(line)
        if m:
            raw_label, pct, kind, rest = m.groups()
            label = f"{raw_label.strip()} limit"
            if section:
                label = f"{section} {label}"
            reset_info = ""
            reset = RESETS_RE.search(rest)
            if reset:
                reset_info = f"resets {reset.group(1).strip()}"
            entries.append(
                UsageEntry.from_percent(
                    label,
                    round_pct(pct),
                    PercentKind.LEFT if kind.lower() == "left" else PercentKind.USED,
                    reset_info=reset_info,
                    reset_minutes=parse_reset_minutes(reset_info, now),
                )
            )
            continue

        if not line.startswith(KEEPS_SECTION) and ":" not in line:
            section = None

    return entries


PROFILE = ProviderProfile(
    name=ProviderName.CODEX,
    binary="codex",
    args=("-s", "read-only", "-a", "untrusted"),
    command="/status",
    is_ready=is_ready,
    data_re=DATA_RE,
    parse=parse_codex_output,
    dialogs=DIALOGS,
)
