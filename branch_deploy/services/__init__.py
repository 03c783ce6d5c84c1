"""Services wrapping the external tools and endpoints the pipeline drives."""

from branch_deploy.services.credentials import (
    GcpCredentialExchanger,
    verify_azure_credentials,
)
from branch_deploy.services.docker import DockerClient
from branch_deploy.services.health import HealthVerifier
from branch_deploy.services.naming import image_reference, normalize_branch, stack_identifier
from branch_deploy.services.pulumi import PulumiClient
from branch_deploy.services.runner import CommandResult, CommandRunner
from branch_deploy.services.validation import format_missing_variables, validate_environment

__all__ = [
    "CommandResult",
    "CommandRunner",
    "DockerClient",
    "GcpCredentialExchanger",
    "HealthVerifier",
    "PulumiClient",
    "format_missing_variables",
    "image_reference",
    "normalize_branch",
    "stack_identifier",
    "validate_environment",
    "verify_azure_credentials",
]
