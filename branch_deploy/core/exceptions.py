"""Custom exceptions for branch deploy."""

from typing import Any, Literal, Sequence


class DeployError(Exception):
    """Base exception for branch deploy."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class MissingVariablesError(DeployError):
    """One or more required environment variables are absent or empty."""

    def __init__(self, missing: Sequence[str], cloud: str):
        self.missing = list(missing)
        self.cloud = cloud
        super().__init__(
            f"Missing required environment variables: {', '.join(self.missing)}",
            {"missing": self.missing, "cloud": cloud},
        )


class MissingOidcTokenError(MissingVariablesError):
    """Neither CI identity token is present."""

    def __init__(self, token_keys: Sequence[str], cloud: str):
        super().__init__([" or ".join(token_keys)], cloud)


class SchemaError(DeployError):
    """Environment variable present but malformed."""

    pass


class CloudDetectionError(DeployError):
    """No cloud target given and none could be inferred."""

    def __init__(self):
        super().__init__(
            "Cannot detect cloud target. Pass --cloud, set DEPLOY_CLOUD, "
            "or set GCP_PROJECT / AZURE_SUBSCRIPTION_ID."
        )


class ExchangeError(DeployError):
    """GCP Workload Identity Federation exchange failed."""

    def __init__(self, step: Literal["sts", "iam"], status_code: int, body: str):
        self.step = step
        self.status_code = status_code
        self.body = body
        super().__init__(
            f"WIF token exchange failed at {step} step: {body}",
            {"step": step, "status_code": status_code},
        )


class CredentialValidationError(DeployError):
    """Azure federated credentials are not usable."""

    def __init__(
        self,
        message: str,
        step: Literal["token_request", "validation"],
        details: str | None = None,
    ):
        self.step = step
        super().__init__(message, {"step": step, "hint": details})


class HealthCheckError(DeployError):
    """Deployed service never reported healthy."""

    def __init__(self, url: str, attempts: int, last_error: str | None = None):
        self.url = url
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            f"Health check failed after {attempts} attempts: {url}",
            {"url": url, "attempts": attempts, "last_error": last_error},
        )


class CommandError(DeployError):
    """External process exited with a non-zero status."""

    def __init__(self, argv: Sequence[str], returncode: int):
        self.argv = list(argv)
        self.returncode = returncode
        super().__init__(
            f"Command '{' '.join(self.argv[:3])}' exited with status {returncode}",
            {"argv": self.argv, "returncode": returncode},
        )
