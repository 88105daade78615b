from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class ProviderName(str, Enum):
    CLAUDE = "claude"
    CODEX = "codex"
    GEMINI = "gemini"


class PercentKind(str, Enum):
    USED = "used"
    LEFT = "left"


class ApprovalPolicy(str, Enum):
    FAIL = "fail"
    ACCEPT = "accept"


class DialogKind(str, Enum):
    TRUST = "trust"
    UPDATE = "update"
    TERMS = "terms"
    SANDBOX = "sandbox"
    AUTHENTICATION = "authentication"
    FIRST_RUN = "first-run"
    UNKNOWN = "unknown"

    @property
    def auto_dismissible(self) -> bool:
        return self in (DialogKind.TRUST, DialogKind.UPDATE, DialogKind.TERMS, DialogKind.SANDBOX)


def _clamp_pct(value: int) -> int:
    return max(0, min(100, value))


@dataclass
class UsageEntry:
    label: str
    percent_used: int
    percent_remaining: int
    reset_info: str = ""
    reset_minutes: int | None = None
    spent: str | None = None
    requests: str | None = None

    @classmethod
    def from_percent(
        cls,
        label: str,
        value: int,
        kind: PercentKind,
        reset_info: str = "",
        reset_minutes: int | None = None,
        spent: str | None = None,
        requests: str | None = None,
    ) -> UsageEntry:
        """Build an entry from the one percentage the provider printed; the other side is derived."""
        value = _clamp_pct(value)
        if kind == PercentKind.USED:
            used, remaining = value, 100 - value
        else:
            used, remaining = 100 - value, value
        return cls(
            label=label,
            percent_used=used,
            percent_remaining=remaining,
            reset_info=reset_info,
            reset_minutes=reset_minutes,
            spent=spent,
            requests=requests,
        )


@dataclass
class UsageData:
    provider: ProviderName
    entries: list[UsageEntry] = field(default_factory=list)


@dataclass
class AggregatedResults:
    successes: dict[ProviderName, UsageData] = field(default_factory=dict)
    failures: dict[ProviderName, str] = field(default_factory=dict)
    exit_codes: dict[ProviderName, int] = field(default_factory=dict)

    def add_success(self, data: UsageData) -> None:
        self.failures.pop(data.provider, None)
        self.exit_codes.pop(data.provider, None)
        self.successes[data.provider] = data

    def add_failure(self, provider: ProviderName, message: str, exit_code: int = 1) -> None:
        self.successes.pop(provider, None)
        self.failures[provider] = message
        self.exit_codes[provider] = exit_code

    @property
    def all_failed(self) -> bool:
        return not self.successes and bool(self.failures)

    def exit_code(self) -> int:
        if not self.all_failed:
            return 0
        codes = set(self.exit_codes.values())
        if len(codes) == 1:
            return codes.pop()
        return 1
