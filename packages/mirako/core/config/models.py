"""Configuration models for the Mirako CLI."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_API_URL = "https://mirako.co"
DEFAULT_MODEL = "metis-2.5"
DEFAULT_VOICE = "mira-korner"


class InteractiveProfile(BaseModel):
    """Saved defaults for ``mirako interactive start --profile NAME``."""

    model_config = ConfigDict(extra="ignore")

    avatar_id: str | None = None
    model: str | None = None
    llm_model: str | None = None
    voice_profile_id: str | None = None
    instruction: str | None = None
    tools: str | None = None


class MirakoConfig(BaseModel):
    """User configuration, stored as YAML in ``~/.mirako/config.yml``.

    Attributes:
        api_token: Bearer token for the Mirako API (None until ``auth login``)
        api_url: Base URL of the API
        default_model: Model used for interactive sessions
        default_voice: Voice profile used when a command omits ``--voice``
        default_save_path: Directory generated files are saved to
        default_poll_interval: Seconds between status polls for generation tasks
        interactive_profiles: Named interactive-session presets (lower-cased keys)
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    api_token: str | None = None
    api_url: str = DEFAULT_API_URL
    default_model: str = DEFAULT_MODEL
    default_voice: str = DEFAULT_VOICE
    default_save_path: str = "."
    default_poll_interval: float = Field(default=2.0, gt=0)
    interactive_profiles: dict[str, InteractiveProfile] = Field(default_factory=dict)

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError("api_url must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("interactive_profiles", mode="before")
    @classmethod
    def lower_profile_names(cls, v: object) -> object:
        if isinstance(v, dict):
            return {str(k).lower(): p for k, p in v.items()}
        return v

    def is_authenticated(self) -> bool:
        """True when a non-empty API token is configured."""
        return bool(self.api_token)

    def get_profile(self, name: str) -> InteractiveProfile | None:
        return self.interactive_profiles.get(name.lower())
