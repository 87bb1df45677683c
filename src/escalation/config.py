"""
Escalation Configuration Module.

Handles application settings, feature flags, and store configuration.
Uses pydantic-settings for validation and type safety.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    """Feature flags for enabling/disabling modules."""

    model_config = SettingsConfigDict(env_prefix="FEATURE_")

    causes: bool = True
    metrics: bool = True

    def to_dict(self) -> dict[str, bool]:
        """Return feature flags as dictionary for health endpoint."""
        return {
            "causes": self.causes,
            "metrics": self.metrics,
        }


class SupabaseSettings(BaseSettings):
    """Supabase configuration for the relation store."""

    model_config = SettingsConfigDict(env_prefix="SUPABASE_")

    url: str = Field(default="https://demo.supabase.co", description="Supabase project URL")
    service_role_key: str = Field(default="demo-service-role-key", description="Supabase service role key")


class CausesSettings(BaseSettings):
    """Escalation cause picker configuration."""

    model_config = SettingsConfigDict(env_prefix="CAUSES_")

    store_backend: Literal["supabase", "memory"] = Field(
        default="supabase",
        description="Relation store implementation. 'memory' is for local runs and tests.",
    )

    # Remote relation layout
    tags_table: str = Field(default="escalation_causes", description="Table holding cause tags")
    bridge_table: str = Field(default="case_escalation_causes", description="Case-to-cause bridge table")
    memberships_table: str = Field(default="team_memberships", description="User-to-team membership table")

    ownership_policy: Literal["team", "team_or_user"] = Field(
        default="team",
        description="Which principals own visible causes: the user's teams, or teams plus the user itself",
    )
    selection_limit: int = Field(
        default=10,
        ge=0,
        description="Maximum number of causes per case (0 disables the limit)",
    )
    default_owner_label: str = Field(default="No Owner Assigned")
    repair_orphans_on_load: bool = Field(
        default=True,
        description="Delete bridge rows whose cause no longer exists while loading a case",
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Application
    app_env: Literal["development", "staging", "production"] = "development"
    app_debug: bool = False
    app_log_level: str = "INFO"

    # Auth
    auth_insecure_dev_bypass: bool = Field(
        default=False,
        description="If true (and not production), accept requests without a token as a stable local user.",
        validation_alias="AUTH_INSECURE_DEV_BYPASS",
    )
    auth_jwt_secret: str = Field(
        default="demo-jwt-secret-for-development-only",
        validation_alias="AUTH_JWT_SECRET",
    )
    auth_jwt_algorithm: str = Field(default="HS256", validation_alias="AUTH_JWT_ALGORITHM")
    auth_access_token_ttl_seconds: int = Field(default=3600, validation_alias="AUTH_ACCESS_TOKEN_TTL_SECONDS")

    # Nested settings
    features: FeatureFlags = Field(default_factory=FeatureFlags)
    supabase: SupabaseSettings = Field(default_factory=SupabaseSettings)
    causes: CausesSettings = Field(default_factory=CausesSettings)

    @property
    def is_production(self) -> bool:
        """Check if running in production."""
        return self.app_env == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
