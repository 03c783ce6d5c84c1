"""Command-line entry point: ``branch-deploy deploy`` and ``branch-deploy cleanup``."""

import asyncio
import os
from pathlib import Path

import click
from pydantic import ValidationError

from branch_deploy import __version__
from branch_deploy.core.cloud import detect_cloud
from branch_deploy.core.exceptions import DeployError, MissingVariablesError
from branch_deploy.core.pipeline import DeployPipeline
from branch_deploy.models.deployment import DeploymentRequest
from branch_deploy.services.validation import format_missing_variables
from branch_deploy.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)

CLOUD_CHOICE = click.Choice(["gcp", "azure"], case_sensitive=False)


def _fail(command: str, error: Exception) -> None:
    """Report a failure on stderr and exit non-zero."""
    if isinstance(error, MissingVariablesError):
        click.echo(format_missing_variables(error), err=True)
    elif isinstance(error, DeployError):
        click.echo(f"{command} failed: {error.message}", err=True)
    else:
        logger.error("cli.unexpected_error", command=command, error=str(error), exc_info=True)
        click.echo(f"{command} failed: {error}", err=True)
    raise SystemExit(1)


def _build_request(cloud: str | None, **fields) -> DeploymentRequest:
    return DeploymentRequest(cloud=detect_cloud(cloud, os.environ), **fields)


@click.group()
@click.version_option(__version__, prog_name="branch-deploy")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Override LOG_LEVEL for this invocation.",
)
def cli(log_level: str | None) -> None:
    """Deploy apps to Cloud Run or Container Apps, one stack per branch."""
    configure_logging(log_level.upper() if log_level else None)


@cli.command()
@click.option("--app", "app_name", required=True, help="Application name")
@click.option("--branch", "branch_name", required=True, help="Git branch name")
@click.option("--cloud", type=CLOUD_CHOICE, default=None, help="Target cloud (auto-detected if omitted)")
@click.option(
    "--context",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Docker build context (default: current directory)",
)
@click.option("--dockerfile", default=None, help="Dockerfile path, relative to the context")
@click.option("--memory", default=None, help="Memory limit (e.g., 512Mi, 1Gi)")
@click.option("--cpu", default=None, help="CPU limit (e.g., 1, 2)")
@click.option("--min-instances", type=int, default=None, help="Minimum instances")
@click.option("--max-instances", type=int, default=None, help="Maximum instances")
@click.option("--runtime-sa", default=None, help="Runtime service account email")
@click.option("--port", type=int, default=None, help="Container port")
@click.option("--private", is_flag=True, default=False, help="Require authentication (disable public access)")
@click.option(
    "--build-args-from-env",
    default=None,
    help="Comma-separated env var names to pass as Docker build args",
)
@click.option("--custom-domain", default=None, help="Custom domain to map to the service")
def deploy(
    app_name: str,
    branch_name: str,
    cloud: str | None,
    context: Path | None,
    dockerfile: str | None,
    memory: str | None,
    cpu: str | None,
    min_instances: int | None,
    max_instances: int | None,
    runtime_sa: str | None,
    port: int | None,
    private: bool,
    build_args_from_env: str | None,
    custom_domain: str | None,
) -> None:
    """Build, push, and deploy an app for a branch."""
    try:
        request = _build_request(
            cloud,
            app_name=app_name,
            branch_name=branch_name,
            context=context or Path.cwd(),
            dockerfile=dockerfile,
            build_args_from_env=tuple(build_args_from_env.split(",")) if build_args_from_env else (),
            memory=memory,
            cpu=cpu,
            min_instances=min_instances,
            max_instances=max_instances,
            runtime_sa=runtime_sa,
            port=port,
            private=private,
            custom_domain=custom_domain,
        )
    except ValidationError as e:
        raise click.BadParameter(str(e)) from None
    except DeployError as e:
        _fail("Deploy", e)

    try:
        asyncio.run(DeployPipeline().deploy(request))
    except Exception as e:
        _fail("Deploy", e)


@cli.command()
@click.option("--app", "app_name", required=True, help="Application name")
@click.option("--branch", "branch_name", required=True, help="Deleted branch name")
@click.option("--cloud", type=CLOUD_CHOICE, default=None, help="Target cloud (auto-detected if omitted)")
def cleanup(app_name: str, branch_name: str, cloud: str | None) -> None:
    """Destroy resources for a deleted branch."""
    try:
        request = _build_request(cloud, app_name=app_name, branch_name=branch_name)
    except ValidationError as e:
        raise click.BadParameter(str(e)) from None
    except DeployError as e:
        _fail("Cleanup", e)

    try:
        asyncio.run(DeployPipeline().cleanup(request))
    except Exception as e:
        _fail("Cleanup", e)


def main() -> None:
    """Console script entry point."""
    cli()


if __name__ == "__main__":
    main()
