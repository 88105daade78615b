from __future__ import annotations

from agentusage.models import DialogKind


class AgentUsageError(Exception):
    """Base for every failure a single provider run can end in."""

    exit_code = 1
    kind = "error"


class ConfigError(AgentUsageError):
    kind = "config"


class ToolNotFound(AgentUsageError):
    exit_code = 2
    kind = "tool-missing"

    def __init__(self, binary: str) -> None:
        super().__init__(f"{binary} CLI not found. Make sure it is installed and on your PATH.")
        self.binary = binary


class SpawnFailure(AgentUsageError):
    kind = "spawn"


class UsageTimeout(AgentUsageError):
    exit_code = 3
    kind = "timeout"


class DialogDetected(AgentUsageError):
    exit_code = 3
    kind = "dialog"

    def __init__(self, dialog: DialogKind, message: str) -> None:
        super().__init__(message)
        self.dialog = dialog


class ManualActionRequired(DialogDetected):
    kind = "manual-action"


class ParseFailure(AgentUsageError):
    exit_code = 4
    kind = "parse-failure"


class Interrupted(AgentUsageError):
    exit_code = 130
    kind = "interrupted"

    def __init__(self, message: str = "Interrupted by shutdown signal") -> None:
        super().__init__(message)
