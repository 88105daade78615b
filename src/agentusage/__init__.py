from agentusage.config import UsageConfig
from agentusage.errors import (
    AgentUsageError,
    ConfigError,
    DialogDetected,
    Interrupted,
    ManualActionRequired,
    ParseFailure,
    SpawnFailure,
    ToolNotFound,
    UsageTimeout,
)
from agentusage.models import AggregatedResults, ApprovalPolicy, DialogKind, ProviderName, UsageData, UsageEntry
from agentusage.orchestrator import Orchestrator
from agentusage.reset_time import parse_reset_minutes

__version__ = "0.1.0"

__all__ = [
    "AgentUsageError",
    "AggregatedResults",
    "ApprovalPolicy",
    "ConfigError",
    "DialogDetected",
    "DialogKind",
    "Interrupted",
    "ManualActionRequired",
    "Orchestrator",
    "ParseFailure",
    "ProviderName",
    "SpawnFailure",
    "ToolNotFound",
    "UsageConfig",
    "UsageData",
    "UsageEntry",
    "UsageTimeout",
    "parse_reset_minutes",
]
