"""Core functionality for branch deploy."""

from branch_deploy.core.cloud import Cloud, CloudProfile, detect_cloud, get_profile
from branch_deploy.core.exceptions import (
    CloudDetectionError,
    CommandError,
    CredentialValidationError,
    DeployError,
    ExchangeError,
    HealthCheckError,
    MissingOidcTokenError,
    MissingVariablesError,
    SchemaError,
)

__all__ = [
    "Cloud",
    "CloudProfile",
    "detect_cloud",
    "get_profile",
    "CloudDetectionError",
    "CommandError",
    "CredentialValidationError",
    "DeployError",
    "ExchangeError",
    "HealthCheckError",
    "MissingOidcTokenError",
    "MissingVariablesError",
    "SchemaError",
]
