from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import math
import tomllib
import tomli_w

from agentusage.errors import ConfigError
from agentusage.models import ApprovalPolicy, ProviderName


HOME = Path.home()
CONFIG_PATH = HOME / ".config/agentusage/config.toml"
DEFAULT_TIMEOUT = 45.0


@dataclass(frozen=True)
class UsageConfig:
    """Settings for one run; shared read-only by every provider thread."""

    timeout: float = DEFAULT_TIMEOUT
    verbose: bool = False
    approval_policy: ApprovalPolicy = ApprovalPolicy.FAIL
    directory: Path | None = None

    def __post_init__(self) -> None:
        if not math.isfinite(self.timeout) or self.timeout <= 0:
            raise ConfigError(f"timeout must be greater than zero, got {self.timeout!r}")
        if self.directory is not None and not Path(self.directory).is_dir():
            raise ConfigError(f"directory does not exist: {self.directory}")

    def working_directory(self) -> Path:
        return Path(self.directory) if self.directory is not None else Path.cwd()


@dataclass
class ProviderConfig:
    enabled: bool = True
    binary: str | None = None


@dataclass
class GeneralConfig:
    timeout: float = DEFAULT_TIMEOUT
    approval_policy: str = ApprovalPolicy.FAIL.value


@dataclass
class Config:
    general: GeneralConfig = field(default_factory=GeneralConfig)
    providers: dict[str, ProviderConfig] = field(
        default_factory=lambda: {name.value: ProviderConfig() for name in ProviderName}
    )

    def enabled_providers(self) -> list[ProviderName]:
        return [name for name in ProviderName if self.providers[name.value].enabled]

    def binary_overrides(self) -> dict[ProviderName, str]:
        return {
            name: self.providers[name.value].binary
            for name in ProviderName
            if self.providers[name.value].binary
        }


def _provider_from_dict(raw: object, name: str, path: Path) -> ProviderConfig:
    if not isinstance(raw, dict):
        raise ConfigError(f"[providers.{name}] in {path} must be a table, got {raw!r}")
    return ProviderConfig(enabled=bool(raw.get("enabled", True)), binary=raw.get("binary") or None)


def _provider_to_dict(cfg: ProviderConfig) -> dict:
    out: dict[str, object] = {"enabled": cfg.enabled}
    if cfg.binary:
        out["binary"] = cfg.binary
    return out


def load_config(path: Path = CONFIG_PATH) -> Config:
    if not path.exists():
        cfg = Config()
        save_config(cfg, path)
        return cfg

    try:
        raw = tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"invalid config file {path}: {exc}") from exc

    general_raw = raw.get("general", {})
    providers_raw = raw.get("providers", {})
    if not isinstance(general_raw, dict) or not isinstance(providers_raw, dict):
        raise ConfigError(f"[general] and [providers] in {path} must be tables")

    policy = general_raw.get("approval_policy", ApprovalPolicy.FAIL.value)
    if not isinstance(policy, str) or policy not in {p.value for p in ApprovalPolicy}:
        raise ConfigError(f"unsupported approval_policy in {path}: {policy!r}")

    timeout = general_raw.get("timeout", DEFAULT_TIMEOUT)
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)):
        raise ConfigError(f"invalid timeout in {path}: {timeout!r}")

    return Config(
        general=GeneralConfig(timeout=float(timeout), approval_policy=policy),
        providers={
            name.value: _provider_from_dict(providers_raw.get(name.value, {}), name.value, path)
            for name in ProviderName
        },
    )


def save_config(cfg: Config, path: Path = CONFIG_PATH) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {
        "general": {
            "timeout": cfg.general.timeout,
            "approval_policy": cfg.general.approval_policy,
        },
        "providers": {name: _provider_to_dict(pc) for name, pc in cfg.providers.items()},
    }
    path.write_text(tomli_w.dumps(payload))
