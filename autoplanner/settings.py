"""Settings resolution with profile precedence chain."""

import os
from collections.abc import Mapping
from functools import lru_cache
from pathlib import Path

import tomlkit
import typer
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

CONFIG_PATH = Path.home() / ".config" / "autoplanner" / "config.toml"

DEFAULT_SCOPES = ["User.Read", "Group.Read.All", "Tasks.ReadWrite"]


class AutoplannerSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="AUTOPLANNER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    default_profile: str | None = None

    # Entra ID app registration
    client_id: str | None = None
    tenant: str = "common"
    scopes: list[str] = DEFAULT_SCOPES
    login_hint: str | None = None  # pre-fills the interactive sign-in
    expiry_margin_seconds: int = 300
    interactive_timeout_seconds: int | None = 120

    # Microsoft Graph
    graph_base_url: str = "https://graph.microsoft.com/v1.0"
    timeout_seconds: float = 30
    auto_bucket: bool = True  # file new tasks into the plan's first bucket
    default_plan_id: str | None = None

    log_level: str = "WARNING"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Profile values arrive as init kwargs; the environment overrides them
        return env_settings, dotenv_settings, init_settings, file_secret_settings

    @property
    def authority(self) -> str:
        return f"https://login.microsoftonline.com/{self.tenant}"


@lru_cache(maxsize=1)
def _load_toml() -> tomlkit.TOMLDocument:
    """Load ~/.config/autoplanner/config.toml, returning empty document if missing."""
    if not CONFIG_PATH.exists():
        return tomlkit.document()
    return tomlkit.load(CONFIG_PATH.open())


def _list_profiles(config: Mapping) -> list[str]:
    # tomlkit Table implements MutableMapping but not dict, so check Mapping
    return [k for k, v in config.items() if isinstance(v, Mapping)]


def get_settings(profile: str | None = None) -> AutoplannerSettings:
    """Resolve the active profile and return a fully populated AutoplannerSettings.

    Precedence (highest to lowest):
    1. profile argument (--profile CLI flag)
    2. AUTOPLANNER_PROFILE env var
    3. default_profile key in ~/.config/autoplanner/config.toml
    4. First profile defined in ~/.config/autoplanner/config.toml
    """
    toml_config = _load_toml()

    active = (
        profile
        or os.environ.get("AUTOPLANNER_PROFILE")
        or toml_config.get("default_profile")
        or ((_profiles := _list_profiles(toml_config)) and _profiles[0] or None)
    )

    profile_defaults: dict = {}
    if active:
        if active in toml_config and isinstance(toml_config[active], Mapping):
            profile_defaults = dict(toml_config[active])
        elif active not in toml_config:
            profiles = _list_profiles(toml_config)
            typer.echo(f"Profile '{active}' not found in {CONFIG_PATH}. Available: {profiles or '(none)'}")
            raise typer.Exit(1)

    settings = AutoplannerSettings(**profile_defaults)

    if not settings.client_id:
        typer.echo(
            "Missing app registration. Set AUTOPLANNER_CLIENT_ID or "
            f"client_id in the [{active or 'profile'}] section of {CONFIG_PATH}"
        )
        raise typer.Exit(1)

    return settings
