"""Tool configuration using pydantic-settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Load .env file without clobbering variables set by the CI runner
load_dotenv(override=False)


class Settings(BaseSettings):
    """Tool settings loaded from environment variables.

    These configure the deploy tool itself. The deployment environment
    (project ids, state buckets, OIDC tokens) is validated separately by
    ``branch_deploy.services.validation``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Pulumi projects
    stacks_dir: Path = Field(default_factory=Path.cwd)
    stack_org: str = "organization"
    infra_stack_ref: str = "organization/infrastructure/prod"

    # Result file consumed by later CI steps
    result_path: Path = Path("/tmp/service-url.txt")

    # Health verification
    health_path: str = "/health"
    health_max_attempts: int = 6
    health_delay_seconds: float = 10.0
    health_timeout_seconds: float = 5.0

    # Google token endpoints
    sts_url: str = "https://sts.googleapis.com/v1/token"
    iam_credentials_url: str = "https://iamcredentials.googleapis.com/v1"
    http_timeout_seconds: float = 30.0

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["console", "json"] = "console"

    def stack_dir(self, cloud: str, layer: str) -> Path:
        """Directory of the Pulumi project for a cloud and layer."""
        return self.stacks_dir / cloud / layer


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()
