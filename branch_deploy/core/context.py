"""Execution context threaded through the pipeline stages."""

from dataclasses import dataclass, field
from typing import Mapping

from branch_deploy.core.cloud import CloudProfile
from branch_deploy.models.deployment import DeploymentRequest, ResourceConfig
from branch_deploy.models.environment import DeployEnvironment


@dataclass(frozen=True)
class CloudCredential:
    """Short-lived bearer token. Lives only in memory for one invocation."""

    access_token: str = field(repr=False)

    def env(self) -> dict[str, str]:
        """Variables the registry login and the Pulumi GCP provider read."""
        return {
            "CLOUDSDK_AUTH_ACCESS_TOKEN": self.access_token,
            "GOOGLE_OAUTH_ACCESS_TOKEN": self.access_token,
        }


@dataclass
class ExecutionContext:
    """Per-invocation state handed from stage to stage.

    The credential channel is explicit: the exchanger stores the token here
    and child processes get it through ``process_env()``. The parent's
    ``os.environ`` is never written.
    """

    request: DeploymentRequest
    profile: CloudProfile
    environment: DeployEnvironment
    base_env: Mapping[str, str]
    credential: CloudCredential | None = None

    # Filled in by the validate and normalize stages
    resources: ResourceConfig | None = None
    build_args: dict[str, str] = field(default_factory=dict)
    service_name: str = ""
    stack_name: str = ""

    def process_env(self) -> dict[str, str]:
        """Environment for external processes."""
        env = dict(self.base_env)
        env["PULUMI_CONFIG_PASSPHRASE"] = self.environment.pulumi_config_passphrase
        if self.credential is not None:
            env.update(self.credential.env())
        return env
