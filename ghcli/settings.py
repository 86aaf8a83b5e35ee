"""Settings resolution: TOML config file, GHCLI_* env vars and CLI overrides."""

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

import tomlkit
from pydantic import BaseModel, SecretStr, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from ghcli.errors import ConfigurationError
from ghcli.models import CollaboratorPermission, Label, TeamPermission, Webhook

CONFIG_FILENAME = ".github.toml"


def default_config_paths() -> list[Path]:
    """Lookup order when --config is not given: cwd first, then home."""
    return [Path.cwd() / CONFIG_FILENAME, Path.home() / CONFIG_FILENAME]


class GitHubSettings(BaseModel):
    organization: str | None = None
    token: SecretStr | None = None
    teams: list[TeamPermission] = []
    collaborators: list[CollaboratorPermission] = []
    labels: list[Label] = []
    webhooks: list[Webhook] = []
    protections: dict[str, list[str]] = {}  # branch -> required status contexts
    remove_default_labels: bool = True

    def require(self, section: str) -> tuple[str, str]:
        """Return (organization, token) or raise ConfigurationError naming the section."""
        if not self.organization:
            raise ConfigurationError(
                f"please provide an organization: set organization in the [{section}] section or pass --organization"
            )
        if not self.token:
            raise ConfigurationError(
                f"please provide a github token: set token in the [{section}] section, GITHUB_TOKEN or pass --token"
            )
        return self.organization, self.token.get_secret_value()


class PullApproveSettings(BaseModel):
    token: SecretStr | None = None
    url: str = "https://pullapprove.com/api"
    filename: str = ".pullapprove.yml"
    protected_branch_name: str = "master"


class ZapprSettings(BaseModel):
    url: str = "https://zappr.opensource.zalan.do"
    token: SecretStr | None = None  # Zappr session cookie; GitHub token is used when unset
    use_app_credentials: bool = True
    timeout: float = 30.0


class GhCliSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="GHCLI_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    log_level: str = "info"
    github: GitHubSettings = GitHubSettings()
    github_test_org: GitHubSettings = GitHubSettings()
    pullapprove: PullApproveSettings = PullApproveSettings()
    zappr: ZapprSettings = ZapprSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # GHCLI_* env vars override the values read from the config file.
        return env_settings, init_settings, dotenv_settings, file_secret_settings


@lru_cache(maxsize=4)
def _load_toml(path: Path) -> dict[str, Any]:
    """Parse a TOML config file into plain python containers."""
    with path.open() as fh:
        return tomlkit.load(fh).unwrap()


def resolve_config_path(config: Path | None) -> Path | None:
    if config is not None:
        if not config.exists():
            raise ConfigurationError(f"invalid configuration file provided {config}")
        return config
    return next((p for p in default_config_paths() if p.exists()), None)


def get_settings(
    config: Path | None = None,
    token: str | None = None,
    organization: str | None = None,
) -> GhCliSettings:
    """Resolve a fully populated GhCliSettings.

    Precedence (highest to lowest):
    1. --token / --organization CLI flags (applied to both github sections)
    2. GHCLI_* env vars, e.g. GHCLI_GITHUB__ORGANIZATION
    3. the TOML config file (--config, ./.github.toml, ~/.github.toml)
    4. GITHUB_TOKEN, for tokens left unset by everything above
    """
    path = resolve_config_path(config)
    file_values: dict[str, Any] = _load_toml(path) if path else {}

    try:
        settings = GhCliSettings(**file_values)
    except ValidationError as exc:
        raise ConfigurationError(f"could not read configuration {path or '(defaults)'}: {exc}") from exc

    env_token = os.environ.get("GITHUB_TOKEN")
    for section in ("github", "github_test_org"):
        current: GitHubSettings = getattr(settings, section)
        update: dict[str, Any] = {}
        if token:
            update["token"] = SecretStr(token)
        elif current.token is None and env_token:
            update["token"] = SecretStr(env_token)
        if organization:
            update["organization"] = organization
        if update:
            setattr(settings, section, current.model_copy(update=update))

    return settings
