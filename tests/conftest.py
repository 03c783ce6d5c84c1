"""Pytest configuration and fixtures."""

from pathlib import Path
from typing import Mapping, Sequence

import pytest

from branch_deploy.config import Settings
from branch_deploy.core.context import CloudCredential
from branch_deploy.core.events import EventBus
from branch_deploy.core.exceptions import CommandError
from branch_deploy.models.environment import GcpEnvironment
from branch_deploy.services.credentials import GcpCredentialExchanger
from branch_deploy.services.runner import CommandResult, CommandRunner


class RecordedCall:
    """One command the fake runner was asked to run."""

    def __init__(self, argv, cwd, env, stdin, capture, check):
        self.argv = list(argv)
        self.cwd = cwd
        self.env = dict(env) if env is not None else None
        self.stdin = stdin
        self.capture = capture
        self.check = check


class FakeRunner(CommandRunner):
    """Records commands instead of running them.

    ``responses`` maps an argv prefix to ``(returncode, stdout)``; the
    longest matching prefix wins. Unmatched commands succeed with no output.
    """

    def __init__(self, responses: dict[tuple[str, ...], tuple[int, str]] | None = None):
        super().__init__()
        self.responses = dict(responses or {})
        self.calls: list[RecordedCall] = []

    def respond(self, prefix: tuple[str, ...], returncode: int = 0, stdout: str = "") -> None:
        self.responses[prefix] = (returncode, stdout)

    async def run(
        self,
        argv: Sequence[str],
        *,
        cwd: Path | str | None = None,
        env: Mapping[str, str] | None = None,
        stdin: str | None = None,
        capture: bool = False,
        check: bool = True,
    ) -> CommandResult:
        argv = list(argv)
        self.calls.append(RecordedCall(argv, cwd, env, stdin, capture, check))

        returncode, stdout = 0, ""
        best = -1
        for prefix, response in self.responses.items():
            if tuple(argv[: len(prefix)]) == prefix and len(prefix) > best:
                best = len(prefix)
                returncode, stdout = response

        if check and returncode != 0:
            raise CommandError(argv, returncode)
        return CommandResult(argv=argv, returncode=returncode, stdout=stdout if capture else "")

    def argvs(self, *prefix: str) -> list[list[str]]:
        """Recorded argvs starting with ``prefix``."""
        return [c.argv for c in self.calls if tuple(c.argv[: len(prefix)]) == prefix]


class FakeExchanger(GcpCredentialExchanger):
    """Returns a fixed token without any HTTP."""

    def __init__(self, token: str = "access-token-123"):
        super().__init__()
        self.token = token
        self.calls: list[GcpEnvironment] = []

    async def exchange_for(self, environment: GcpEnvironment) -> CloudCredential:
        self.calls.append(environment)
        return CloudCredential(access_token=self.token)


@pytest.fixture
def runner() -> FakeRunner:
    """A fresh recording runner."""
    return FakeRunner()


@pytest.fixture
def events() -> EventBus:
    """An event bus that records without echoing."""
    return EventBus(echo=None)


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing every file at a temp dir."""
    return Settings(
        stacks_dir=tmp_path / "stacks",
        result_path=tmp_path / "service-url.txt",
        health_max_attempts=3,
        health_delay_seconds=0,
        health_timeout_seconds=1,
    )


@pytest.fixture
def gcp_env() -> dict[str, str]:
    """A complete GCP deployment environment."""
    return {
        "GCP_PROJECT": "my-project",
        "GCP_PROJECT_NUMBER": "123456789",
        "GCP_REGION": "us-central1",
        "STATE_BUCKET": "my-state-bucket",
        "SERVICE_ACCOUNT_EMAIL": "deploy@my-project.iam.gserviceaccount.com",
        "PULUMI_CONFIG_PASSPHRASE": "passphrase",
        "BITBUCKET_STEP_OIDC_TOKEN": "oidc-token-123",
    }


@pytest.fixture
def azure_env() -> dict[str, str]:
    """A complete Azure deployment environment."""
    return {
        "AZURE_CLIENT_ID": "client-id",
        "AZURE_TENANT_ID": "tenant-id",
        "AZURE_SUBSCRIPTION_ID": "subscription-id",
        "AZURE_RESOURCE_GROUP": "devops-shared-rg",
        "STATE_STORAGE_ACCOUNT": "pulumistate",
        "PULUMI_CONFIG_PASSPHRASE": "passphrase",
        "ACTIONS_ID_TOKEN_REQUEST_TOKEN": "github-oidc-token",
    }


@pytest.fixture
def exchanger() -> FakeExchanger:
    """A credential exchanger that never touches the network."""
    return FakeExchanger()
