"""Deployment environment validation."""

from typing import Mapping

from pydantic import ValidationError

from branch_deploy.core.cloud import Cloud, get_profile
from branch_deploy.core.exceptions import (
    MissingOidcTokenError,
    MissingVariablesError,
    SchemaError,
)
from branch_deploy.models.environment import (
    ENVIRONMENT_SCHEMAS,
    OIDC_TOKEN_KEYS,
    DeployEnvironment,
)
from branch_deploy.utils.logging import get_logger

logger = get_logger(__name__)


def validate_environment(
    env: Mapping[str, str | None], cloud: Cloud | str
) -> DeployEnvironment:
    """Validate and default the deployment environment for a cloud.

    Empty values count as absent. Every missing required key is reported
    at once. The OIDC token check runs only after the schema passes.

    Raises:
        MissingVariablesError: required keys absent, or no OIDC token
        SchemaError: keys present but malformed
    """
    cloud = Cloud(cloud)
    schema = ENVIRONMENT_SCHEMAS[cloud]
    present = {k: v for k, v in env.items() if v}

    try:
        validated = schema.model_validate(present)
    except ValidationError as e:
        aliases = {
            name: field.alias or name for name, field in schema.model_fields.items()
        }
        missing = [
            aliases.get(str(err["loc"][0]), str(err["loc"][0]))
            for err in e.errors()
            if err["type"] == "missing"
        ]
        if missing:
            logger.warning("validation.missing_variables", cloud=cloud.value, missing=missing)
            raise MissingVariablesError(missing, cloud.value) from None

        problems = "; ".join(
            f"{aliases.get(str(err['loc'][0]), err['loc'][0])}: {err['msg']}"
            for err in e.errors()
        )
        raise SchemaError(
            f"Environment validation failed: {problems}",
            {"cloud": cloud.value},
        ) from None

    if validated.oidc_token is None:
        raise MissingOidcTokenError(OIDC_TOKEN_KEYS, cloud.value)

    logger.debug("validation.passed", cloud=cloud.value)
    return validated


def format_missing_variables(error: MissingVariablesError) -> str:
    """Operator-facing banner listing every missing key."""
    ci_hint = get_profile(error.cloud).ci_hint

    lines = [
        "==============================================",
        f"ERROR: Missing required {error.cloud.upper()} environment variables:",
        "==============================================",
        *(f"  - {name}" for name in error.missing),
        "",
        ci_hint,
    ]
    return "\n".join(lines)
