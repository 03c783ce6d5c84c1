"""Pulumi stack operations.

Three Pulumi projects exist per cloud: bootstrap (state storage, run by
hand), infrastructure (shared registry and identity) and app (one stack
per app and branch). The pipeline reads outputs from infrastructure and
applies or destroys app stacks.
"""

from pathlib import Path
from typing import Mapping, Sequence

from branch_deploy.models.deployment import DeployResult
from branch_deploy.services.runner import CommandRunner
from branch_deploy.utils.logging import get_logger


class PulumiClient:
    """Wraps the pulumi CLI as a sequence of short-lived processes.

    Every step except ``stack select`` during destroy is fatal on failure.
    """

    def __init__(self, runner: CommandRunner | None = None):
        self.runner = runner or CommandRunner()
        self.logger = get_logger("pulumi")

    async def install_dependencies(
        self, work_dir: Path, *, env: Mapping[str, str] | None = None
    ) -> None:
        """Install the stack program's npm dependencies."""
        await self.runner.run(["npm", "ci", "--silent"], cwd=work_dir, env=env)

    async def login(
        self, backend_url: str, work_dir: Path, *, env: Mapping[str, str] | None = None
    ) -> None:
        """Log into the state backend (``gs://`` or ``azblob://``)."""
        await self.runner.run(["pulumi", "login", backend_url], cwd=work_dir, env=env)

    async def _prepare(
        self, backend_url: str, work_dir: Path, env: Mapping[str, str] | None
    ) -> None:
        await self.install_dependencies(work_dir, env=env)
        await self.login(backend_url, work_dir, env=env)

    async def read_output(
        self,
        key: str,
        work_dir: Path,
        stack: str | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> str:
        """Read one stack output from stdout."""
        argv = ["pulumi", "stack", "output", key]
        if stack:
            argv.extend(["-s", stack])
        argv.append("--show-secrets")

        result = await self.runner.run(argv, cwd=work_dir, env=env, capture=True)
        return result.stdout.strip()

    async def get_outputs(
        self,
        stack_ref: str,
        work_dir: Path,
        keys: Sequence[str],
        backend_url: str,
        *,
        env: Mapping[str, str] | None = None,
    ) -> dict[str, str]:
        """Read outputs of another stack, one process per key."""
        await self._prepare(backend_url, work_dir, env)

        outputs: dict[str, str] = {}
        for key in keys:
            outputs[key] = await self.read_output(key, work_dir, stack_ref, env=env)

        self.logger.info("pulumi.outputs.read", stack=stack_ref, keys=list(keys))
        return outputs

    async def apply(
        self,
        stack_name: str,
        work_dir: Path,
        config: Mapping[str, str],
        backend_url: str,
        url_output: str = "url",
        service_name_output: str = "serviceName_",
        *,
        env: Mapping[str, str] | None = None,
    ) -> DeployResult:
        """Select or create the stack, set config, ``up``, read the result."""
        await self._prepare(backend_url, work_dir, env)

        # Non-fatal: fails harmlessly when the stack already exists
        await self.runner.run(
            ["pulumi", "stack", "select", stack_name, "--create"],
            cwd=work_dir,
            env=env,
            check=False,
        )

        for key, value in config.items():
            await self.runner.run(
                ["pulumi", "config", "set", key, value], cwd=work_dir, env=env
            )

        await self.runner.run(["pulumi", "up", "--yes"], cwd=work_dir, env=env)

        url = await self.read_output(url_output, work_dir, env=env)
        service_name = await self.read_output(service_name_output, work_dir, env=env)

        self.logger.info("pulumi.apply.completed", stack=stack_name, url=url)
        return DeployResult(url=url, service_name=service_name)

    async def destroy(
        self,
        stack_name: str,
        work_dir: Path,
        backend_url: str,
        extra_config: Mapping[str, str] | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> bool:
        """Destroy the stack's resources and remove the stack.

        Returns False, without error, when the stack does not exist.
        """
        await self._prepare(backend_url, work_dir, env)

        selected = await self.runner.run(
            ["pulumi", "stack", "select", stack_name],
            cwd=work_dir,
            env=env,
            check=False,
        )
        if not selected.ok:
            self.logger.info("pulumi.destroy.no_stack", stack=stack_name)
            return False

        for key, value in (extra_config or {}).items():
            await self.runner.run(
                ["pulumi", "config", "set", key, value], cwd=work_dir, env=env
            )

        await self.runner.run(["pulumi", "destroy", "--yes"], cwd=work_dir, env=env)
        await self.runner.run(["pulumi", "stack", "rm", "--yes"], cwd=work_dir, env=env)

        self.logger.info("pulumi.destroy.completed", stack=stack_name)
        return True
