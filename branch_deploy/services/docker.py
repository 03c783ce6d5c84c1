"""Container image login, cache pull, build and push."""

import os
from pathlib import Path
from typing import Mapping

from branch_deploy.core.exceptions import CommandError
from branch_deploy.services.runner import CommandRunner
from branch_deploy.utils.logging import get_logger

# Username Google registries expect alongside an OAuth access token
OAUTH_USERNAME = "oauth2accesstoken"
PLATFORM = "linux/amd64"


class DockerClient:
    """Wraps the docker CLI. All output streams live to the CI log."""

    def __init__(self, runner: CommandRunner | None = None):
        self.runner = runner or CommandRunner()
        self.logger = get_logger("docker")

    async def login(
        self,
        registry: str,
        access_token: str | None = None,
        *,
        native: bool = False,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Log into a registry.

        With an access token, the token is the password for the OAuth
        username, passed on stdin. With ``native``, the Azure CLI performs
        the login for an ACR login server.
        """
        if native:
            registry_name = registry.split(".", 1)[0]
            await self.runner.run(["az", "acr", "login", "--name", registry_name], env=env)
        elif access_token:
            await self.runner.run(
                [
                    "docker",
                    "login",
                    "-u",
                    OAUTH_USERNAME,
                    "--password-stdin",
                    f"https://{registry}",
                ],
                env=env,
                stdin=access_token,
            )
        else:
            raise ValueError("registry login needs an access token or native=True")

        self.logger.info("docker.login.succeeded", registry=registry, native=native)

    async def pull(self, image: str, *, env: Mapping[str, str] | None = None) -> bool:
        """Pull a prior image for layer cache.

        Returns False on any failure. A missing image is the normal state
        of a first build.
        """
        try:
            result = await self.runner.run(["docker", "pull", image], env=env, check=False)
        except (CommandError, OSError) as e:
            self.logger.info("docker.pull.miss", image=image, error=str(e))
            return False

        if not result.ok:
            self.logger.info("docker.pull.miss", image=image, returncode=result.returncode)
            return False

        self.logger.info("docker.pull.hit", image=image)
        return True

    async def build(
        self,
        image: str,
        context: Path | str,
        cache_from: str | None = None,
        dockerfile: str | None = None,
        build_args: Mapping[str, str] | None = None,
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        """Build with BuildKit inline cache for a fixed platform."""
        argv = [
            "docker",
            "build",
            "--platform",
            PLATFORM,
            "--build-arg",
            "BUILDKIT_INLINE_CACHE=1",
        ]

        if cache_from:
            argv.extend(["--cache-from", cache_from])

        if dockerfile:
            argv.extend(["-f", dockerfile])

        for key, value in (build_args or {}).items():
            argv.extend(["--build-arg", f"{key}={value}"])

        argv.extend(["-t", image, str(context)])

        build_env = dict(env if env is not None else os.environ)
        build_env["DOCKER_BUILDKIT"] = "1"

        await self.runner.run(argv, env=build_env)

    async def push(self, image: str, *, env: Mapping[str, str] | None = None) -> None:
        """Push an image. Failure propagates."""
        await self.runner.run(["docker", "push", image], env=env)
