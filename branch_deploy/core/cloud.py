"""Cloud targets and the capability profile each one selects."""

from dataclasses import dataclass
from enum import Enum
from typing import Mapping

from branch_deploy.core.exceptions import CloudDetectionError


class Cloud(str, Enum):
    """Supported cloud targets."""

    GCP = "gcp"
    AZURE = "azure"


@dataclass(frozen=True)
class CloudProfile:
    """Everything the pipeline needs to know about a cloud target.

    Selected once at startup from ``PROFILES``; the pipeline branches on
    these capabilities instead of on the cloud name.
    """

    cloud: Cloud
    # Longest service name the platform accepts
    max_name_length: int
    default_memory: str
    default_cpu: str
    # Explicit two-hop WIF exchange vs. SDK-driven federation
    exchanges_credentials: bool
    # Registry login through the platform CLI instead of a bearer token
    native_registry_login: bool
    # InfraOutputs field -> Pulumi output name on the shared stack
    infra_output_keys: tuple[tuple[str, str], ...]
    url_output: str
    service_name_output: str
    ci_hint: str

    def backend_url(self, state_store: str) -> str:
        """Pulumi state backend URL for a bucket / storage account."""
        if self.cloud == Cloud.AZURE:
            return f"azblob://state?storage_account={state_store}"
        return f"gs://{state_store}"


PROFILES: dict[Cloud, CloudProfile] = {
    Cloud.GCP: CloudProfile(
        cloud=Cloud.GCP,
        max_name_length=63,
        default_memory="512Mi",
        default_cpu="1",
        exchanges_credentials=True,
        native_registry_login=False,
        infra_output_keys=(
            ("registry_url", "registryUrl"),
            ("project_id", "projectId_"),
            ("region", "region_"),
        ),
        url_output="url",
        service_name_output="serviceName_",
        ci_hint="Set these in: Repository Settings > Pipelines > Repository variables",
    ),
    Cloud.AZURE: CloudProfile(
        cloud=Cloud.AZURE,
        max_name_length=32,
        default_memory="2Gi",
        default_cpu="1",
        exchanges_credentials=False,
        native_registry_login=True,
        infra_output_keys=(
            ("registry_url", "acrLoginServer"),
            ("resource_group_name", "resourceGroupName"),
            ("environment_id", "environmentId"),
        ),
        url_output="url",
        service_name_output="containerAppName",
        ci_hint="Set these in: Repository Settings > Secrets and variables > Actions",
    ),
}


def get_profile(cloud: Cloud | str) -> CloudProfile:
    """Get the capability profile for a cloud target."""
    return PROFILES[Cloud(cloud)]


def detect_cloud(explicit: str | None, env: Mapping[str, str]) -> Cloud:
    """Resolve the cloud target.

    Order: explicit flag, ``DEPLOY_CLOUD``, ``GCP_PROJECT`` present,
    ``AZURE_SUBSCRIPTION_ID`` present.
    """
    if explicit:
        return Cloud(explicit.lower())

    override = env.get("DEPLOY_CLOUD")
    if override:
        try:
            return Cloud(override.lower())
        except ValueError:
            raise CloudDetectionError() from None

    if env.get("GCP_PROJECT"):
        return Cloud.GCP
    if env.get("AZURE_SUBSCRIPTION_ID"):
        return Cloud.AZURE

    raise CloudDetectionError()
