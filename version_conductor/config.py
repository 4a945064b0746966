"""Settings and portfolio file loading."""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Iterable

import yaml
from pydantic import AliasChoices, BaseModel, Field, ValidationError, field_validator

from version_conductor.ecosystems import Ecosystem, canonical_account
from version_conductor.errors import ConfigError
from version_conductor.models import Portfolio

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "~/.config/version-conductor/config.yaml"
DEFAULT_CACHE_DIR = "~/.cache/version-conductor"


@dataclass
class Settings:
    """Runtime settings shared by the CLI, the cache and the hosting client."""
    cache_dir: str = DEFAULT_CACHE_DIR
    cache_ttl: float = 3600.0
    memory_only: bool = False
    cache_enabled: bool = True
    workers: int = 1
    api_url: str = "https://api.github.com"
    token: str = ""
    max_retries: int = 3
    initial_backoff: float = 1.0
    log_level: str = "INFO"

    def __post_init__(self):
        if not self.token:
            self.token = os.environ.get("GITHUB_TOKEN", "")

    def to_dict(self, include_token: bool = False) -> dict[str, Any]:
        """Convert settings to a dictionary. The token is left out unless asked for."""
        data = asdict(self)
        if not include_token:
            data.pop("token")
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Settings:
        # Filter to only known fields
        valid_fields = {f.name for f in cls.__dataclass_fields__.values()}
        filtered = {k: v for k, v in data.items() if k in valid_fields}
        return cls(**filtered)

    @classmethod
    def load(cls, path: str | Path | None = None) -> Settings:
        """Load settings from YAML; a missing default file yields defaults."""
        explicit = path is not None
        filepath = Path(path or DEFAULT_CONFIG_PATH).expanduser()
        if not filepath.exists():
            if explicit:
                raise ConfigError(f"settings file not found: {filepath}")
            return cls()
        try:
            data = yaml.safe_load(filepath.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"cannot read settings file {filepath}: {e}") from e
        if data is None:
            return cls()
        if not isinstance(data, dict):
            raise ConfigError(f"settings file {filepath} must contain a mapping")
        return cls.from_dict(data)

    def save(self, path: str | Path | None = None) -> Path:
        filepath = Path(path or DEFAULT_CONFIG_PATH).expanduser()
        filepath.parent.mkdir(parents=True, exist_ok=True)
        with open(filepath, "w", encoding="utf-8") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False)
        logger.debug("saved settings to %s", filepath)
        return filepath


# ── Portfolio files ──────────────────────────────────────────


class PortfolioFile(BaseModel):
    """On-disk portfolio definition.

    Also accepts the older ``orgs`` / ``languages`` / ``graph_repo`` keys.
    """
    name: str = "default"
    accounts: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("accounts", "orgs"),
    )
    ecosystems: list[str] = Field(
        default_factory=list, validation_alias=AliasChoices("ecosystems", "languages"),
    )
    graph_storage_location: str = Field(
        default="",
        validation_alias=AliasChoices("graph_storage_location", "graphStorageLocation", "graph_repo"),
    )

    @field_validator("ecosystems")
    @classmethod
    def _known_ecosystems(cls, value: list[str]) -> list[str]:
        return [Ecosystem.parse(tag).value for tag in value]

    @field_validator("accounts")
    @classmethod
    def _non_empty_accounts(cls, value: list[str]) -> list[str]:
        return [a for a in value if a.strip()]

    def to_portfolio(self) -> Portfolio:
        return Portfolio(
            name=self.name,
            accounts=expand_accounts(self.accounts),
            ecosystems=[Ecosystem(tag) for tag in self.ecosystems],
            graph_storage_location=self.graph_storage_location,
        )


def load_portfolio(path: str | Path) -> Portfolio:
    """Read and validate a YAML (or JSON) portfolio file."""
    filepath = Path(path).expanduser()
    try:
        data = yaml.safe_load(filepath.read_text(encoding="utf-8"))
    except (OSError, yaml.YAMLError) as e:
        raise ConfigError(f"cannot read portfolio file {filepath}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigError(f"portfolio file {filepath} must contain a mapping")
    try:
        return PortfolioFile.model_validate(data).to_portfolio()
    except ValidationError as e:
        raise ConfigError(f"invalid portfolio file {filepath}: {e}") from e


def expand_accounts(names: Iterable[str]) -> list[str]:
    """Canonicalize account references, splitting comma lists and dropping duplicates.

    ``["acme", "github.com/Other,@third"]`` -> ``["github.com/acme",
    "github.com/other", "github.com/third"]``.
    """
    seen: set[str] = set()
    accounts: list[str] = []
    for raw in names:
        for part in raw.split(","):
            account = canonical_account(part)
            if account and account not in seen:
                seen.add(account)
                accounts.append(account)
    return accounts
