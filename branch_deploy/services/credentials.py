"""Keyless cloud credentials for CI.

GCP needs an explicit two-hop Workload Identity Federation exchange:

1. Exchange the CI OIDC token for a federated token at sts.googleapis.com
2. Exchange the federated token for a service account access token at
   iamcredentials.googleapis.com

Azure needs no exchange here. The Azure SDK inside the Pulumi provider
performs federation itself; this module only checks that it has what it
needs.
"""

from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from branch_deploy.config import settings
from branch_deploy.core.context import CloudCredential
from branch_deploy.core.exceptions import CredentialValidationError, ExchangeError
from branch_deploy.models.environment import OIDC_TOKEN_KEYS, GcpEnvironment
from branch_deploy.utils.logging import get_logger

logger = get_logger(__name__)

# RFC 8693 constants accepted by the Google STS endpoint
GRANT_TYPE = "urn:ietf:params:oauth:grant-type:token-exchange"
SUBJECT_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:jwt"
REQUESTED_TOKEN_TYPE = "urn:ietf:params:oauth:token-type:access_token"
CLOUD_PLATFORM_SCOPE = "https://www.googleapis.com/auth/cloud-platform"
ISSUER_HOST = "iam.googleapis.com"


def build_audience(project_number: str, pool_id: str, provider_id: str) -> str:
    """Audience string identifying the WIF provider."""
    return (
        f"//{ISSUER_HOST}/projects/{project_number}/locations/global"
        f"/workloadIdentityPools/{pool_id}/providers/{provider_id}"
    )


def _json_field(response: httpx.Response, name: str) -> str | None:
    try:
        data: Any = response.json()
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    value = data.get(name)
    return value if isinstance(value, str) and value else None


class GcpCredentialExchanger:
    """Exchanges a CI OIDC token for a GCP access token."""

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        sts_url: str | None = None,
        iam_credentials_url: str | None = None,
        timeout: float | None = None,
    ):
        self.transport = transport
        self.sts_url = sts_url or settings.sts_url
        self.iam_credentials_url = iam_credentials_url or settings.iam_credentials_url
        self.timeout = timeout if timeout is not None else settings.http_timeout_seconds

    async def exchange(
        self,
        oidc_token: str,
        project_number: str,
        pool_id: str,
        provider_id: str,
        service_account_email: str,
    ) -> CloudCredential:
        """Run both hops and return the service account token.

        Raises:
            ExchangeError: either hop returned non-2xx or lacked its token field
        """
        async with httpx.AsyncClient(
            transport=self.transport, timeout=self.timeout
        ) as client:
            federated_token = await self._sts_exchange(
                client,
                oidc_token,
                build_audience(project_number, pool_id, provider_id),
            )
            access_token = await self._impersonate(
                client, federated_token, service_account_email
            )

        logger.info(
            "credentials.gcp.exchanged",
            service_account=service_account_email,
            pool=pool_id,
            provider=provider_id,
        )
        return CloudCredential(access_token=access_token)

    async def exchange_for(self, environment: GcpEnvironment) -> CloudCredential:
        """Exchange using the keys of a validated GCP environment."""
        if not environment.oidc_token:
            raise CredentialValidationError(
                "No OIDC token available for the WIF exchange.",
                "token_request",
            )
        return await self.exchange(
            oidc_token=environment.oidc_token,
            project_number=environment.gcp_project_number,
            pool_id=environment.wif_pool_id,
            provider_id=environment.wif_provider_id,
            service_account_email=environment.service_account_email,
        )

    async def _sts_exchange(
        self, client: httpx.AsyncClient, oidc_token: str, audience: str
    ) -> str:
        response = await client.post(
            self.sts_url,
            json={
                "grant_type": GRANT_TYPE,
                "audience": audience,
                "scope": CLOUD_PLATFORM_SCOPE,
                "requested_token_type": REQUESTED_TOKEN_TYPE,
                "subject_token": oidc_token,
                "subject_token_type": SUBJECT_TOKEN_TYPE,
            },
        )
        if not response.is_success:
            raise ExchangeError("sts", response.status_code, response.text)

        token = _json_field(response, "access_token")
        if token is None:
            raise ExchangeError("sts", response.status_code, "No access_token in response")
        return token

    async def _impersonate(
        self, client: httpx.AsyncClient, federated_token: str, service_account_email: str
    ) -> str:
        response = await client.post(
            f"{self.iam_credentials_url}/projects/-/serviceAccounts/"
            f"{service_account_email}:generateAccessToken",
            headers={"Authorization": f"Bearer {federated_token}"},
            json={"scope": [CLOUD_PLATFORM_SCOPE]},
        )
        if not response.is_success:
            raise ExchangeError("iam", response.status_code, response.text)

        token = _json_field(response, "accessToken")
        if token is None:
            raise ExchangeError("iam", response.status_code, "No accessToken in response")
        return token


@dataclass(frozen=True)
class AzureCredentialConfig:
    """Identity the Azure SDK will federate as."""

    client_id: str
    tenant_id: str
    subscription_id: str


def verify_azure_credentials(env: Mapping[str, str | None]) -> AzureCredentialConfig:
    """Check that Azure federation has everything it needs.

    Raises:
        CredentialValidationError: identity variables or OIDC token missing
    """
    keys = ("AZURE_CLIENT_ID", "AZURE_TENANT_ID", "AZURE_SUBSCRIPTION_ID")
    missing = [key for key in keys if not env.get(key)]
    if missing:
        raise CredentialValidationError(
            f"Missing required Azure environment variables: {', '.join(missing)}",
            "validation",
            "Ensure Azure OIDC is configured in your CI/CD workflow",
        )

    if not any(env.get(key) for key in OIDC_TOKEN_KEYS):
        raise CredentialValidationError(
            "No OIDC token available. Ensure OIDC is enabled in your CI/CD pipeline.",
            "token_request",
            "For GitHub Actions: Add 'permissions: id-token: write'. "
            "For Bitbucket: Add 'oidc: true' to the step.",
        )

    config = AzureCredentialConfig(
        client_id=env["AZURE_CLIENT_ID"],
        tenant_id=env["AZURE_TENANT_ID"],
        subscription_id=env["AZURE_SUBSCRIPTION_ID"],
    )
    logger.info("credentials.azure.verified", tenant_id=config.tenant_id)
    return config
