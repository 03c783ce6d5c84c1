"""Validated deployment environments, one schema per cloud."""

import re
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator

from branch_deploy.core.cloud import Cloud

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")

OIDC_TOKEN_KEYS = ("BITBUCKET_STEP_OIDC_TOKEN", "ACTIONS_ID_TOKEN_REQUEST_TOKEN")


class DeployEnvironment(BaseModel):
    """Keys shared by both clouds."""

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)

    cloud: ClassVar[Cloud]

    pulumi_config_passphrase: str = Field(alias="PULUMI_CONFIG_PASSPHRASE", repr=False)

    # OIDC token (one of Bitbucket or GitHub required)
    bitbucket_oidc_token: str | None = Field(
        default=None, alias="BITBUCKET_STEP_OIDC_TOKEN", repr=False
    )
    github_oidc_token: str | None = Field(
        default=None, alias="ACTIONS_ID_TOKEN_REQUEST_TOKEN", repr=False
    )

    @property
    def oidc_token(self) -> str | None:
        """CI identity token; Bitbucket wins when both are set."""
        return self.bitbucket_oidc_token or self.github_oidc_token

    @property
    def state_store(self) -> str:
        """Bucket or storage account holding Pulumi state."""
        raise NotImplementedError


class GcpEnvironment(DeployEnvironment):
    """Environment for Cloud Run deployments."""

    cloud: ClassVar[Cloud] = Cloud.GCP

    gcp_project: str = Field(alias="GCP_PROJECT")
    gcp_project_number: str = Field(alias="GCP_PROJECT_NUMBER")
    gcp_region: str = Field(alias="GCP_REGION")
    state_bucket: str = Field(alias="STATE_BUCKET")
    service_account_email: str = Field(alias="SERVICE_ACCOUNT_EMAIL")

    # Optional with defaults
    wif_pool_id: str = Field(default="cicd-deployments", alias="WIF_POOL_ID")
    wif_provider_id: str = Field(default="bitbucket", alias="WIF_PROVIDER_ID")

    @field_validator("service_account_email")
    @classmethod
    def validate_email(cls, v: str) -> str:
        if not EMAIL_PATTERN.match(v):
            raise ValueError("must be a valid email address")
        return v

    @property
    def state_store(self) -> str:
        return self.state_bucket


class AzureEnvironment(DeployEnvironment):
    """Environment for Container Apps deployments."""

    cloud: ClassVar[Cloud] = Cloud.AZURE

    azure_client_id: str = Field(alias="AZURE_CLIENT_ID")
    azure_tenant_id: str = Field(alias="AZURE_TENANT_ID")
    azure_subscription_id: str = Field(alias="AZURE_SUBSCRIPTION_ID")
    azure_resource_group: str = Field(alias="AZURE_RESOURCE_GROUP")
    state_storage_account: str = Field(alias="STATE_STORAGE_ACCOUNT")

    # Optional
    azure_location: str = Field(default="eastus", alias="AZURE_LOCATION")

    @property
    def state_store(self) -> str:
        return self.state_storage_account


ENVIRONMENT_SCHEMAS: dict[Cloud, type[DeployEnvironment]] = {
    Cloud.GCP: GcpEnvironment,
    Cloud.AZURE: AzureEnvironment,
}
