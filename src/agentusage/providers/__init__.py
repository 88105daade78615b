from __future__ import annotations

from dataclasses import replace

from agentusage.models import ProviderName
from agentusage.providers import claude, codex, gemini
from agentusage.providers.base import ProviderProfile

PROFILES: dict[ProviderName, ProviderProfile] = {
    ProviderName.CLAUDE: claude.PROFILE,
    ProviderName.CODEX: codex.PROFILE,
    ProviderName.GEMINI: gemini.PROFILE,
}


def get_profile(name: ProviderName | str, binary: str | None = None) -> ProviderProfile:
    profile = PROFILES[ProviderName(name)]
    if binary:
        profile = replace(profile, binary=binary)
    return profile


__all__ = ["PROFILES", "ProviderProfile", "get_profile"]
