"""Deployment-related data models."""

from pathlib import Path
from typing import Mapping

from pydantic import BaseModel, ConfigDict, Field

from branch_deploy.core.cloud import Cloud, CloudProfile
from branch_deploy.core.exceptions import SchemaError


class DeploymentRequest(BaseModel):
    """One CLI invocation: which app, which branch, which cloud, and overrides."""

    model_config = ConfigDict(frozen=True)

    cloud: Cloud
    app_name: str = Field(..., min_length=1, max_length=63, pattern=r"^[a-z0-9-]+$")
    branch_name: str = Field(..., min_length=1)

    # Build
    context: Path = Field(default_factory=Path.cwd)
    dockerfile: str | None = None
    build_args_from_env: tuple[str, ...] = ()

    # Resource overrides
    memory: str | None = None
    cpu: str | None = None
    min_instances: int | None = Field(default=None, ge=0)
    max_instances: int | None = Field(default=None, ge=1)
    runtime_sa: str | None = None
    port: int | None = Field(default=None, ge=1, le=65535)
    private: bool = False
    custom_domain: str | None = None


class ResourceConfig(BaseModel):
    """Resource sizing after applying flags, environment fallbacks and cloud defaults."""

    memory: str
    cpu: str
    min_instances: int = 0
    max_instances: int = 100
    port: int = 8080
    runtime_sa: str | None = None
    allow_unauthenticated: bool = True
    custom_domain: str | None = None

    @classmethod
    def resolve(
        cls,
        request: DeploymentRequest,
        profile: CloudProfile,
        env: Mapping[str, str],
    ) -> "ResourceConfig":
        """Flag beats environment variable beats cloud default."""
        if request.private:
            allow_unauthenticated = False
        else:
            allow_unauthenticated = env.get("ALLOW_UNAUTHENTICATED") != "false"

        return cls(
            memory=request.memory or env.get("MEMORY_LIMIT") or profile.default_memory,
            cpu=request.cpu or env.get("CPU_LIMIT") or profile.default_cpu,
            min_instances=_pick_int(request.min_instances, env, "MIN_INSTANCES", 0),
            max_instances=_pick_int(request.max_instances, env, "MAX_INSTANCES", 100),
            port=_pick_int(request.port, env, "CONTAINER_PORT", 8080),
            runtime_sa=request.runtime_sa or env.get("RUNTIME_SERVICE_ACCOUNT") or None,
            allow_unauthenticated=allow_unauthenticated,
            custom_domain=request.custom_domain or env.get("CUSTOM_DOMAIN") or None,
        )


def _pick_int(value: int | None, env: Mapping[str, str], key: str, default: int) -> int:
    if value is not None:
        return value
    raw = env.get(key)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise SchemaError(
            f"Environment variable {key} must be an integer, got {raw!r}",
            {"key": key},
        ) from None


def collect_build_args(names: tuple[str, ...] | list[str], env: Mapping[str, str]) -> dict[str, str]:
    """Forward the named environment variables as Docker build args.

    Names are trimmed; unset or empty variables are skipped.
    """
    build_args: dict[str, str] = {}
    for name in names:
        key = name.strip()
        if not key:
            continue
        value = env.get(key)
        if value:
            build_args[key] = value
    return build_args


class InfraOutputs(BaseModel):
    """Outputs of the shared infrastructure stack. Read fresh every run."""

    registry_url: str

    # GCP only
    project_id: str | None = None
    region: str | None = None

    # Azure only
    resource_group_name: str | None = None
    environment_id: str | None = None


class DeployResult(BaseModel):
    """Outputs of the applied app stack."""

    url: str
    service_name: str = ""
