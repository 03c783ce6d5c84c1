"""Unit tests for the docker client."""

import pytest

from branch_deploy.core.exceptions import CommandError
from branch_deploy.services.docker import DockerClient
from branch_deploy.services.runner import CommandRunner

IMAGE = "us-central1-docker.pkg.dev/my-project/apps/demo:feature-abc"


class TestDockerLogin:
    """Tests for registry login."""

    @pytest.mark.asyncio
    async def test_token_login_uses_stdin(self, runner):
        docker = DockerClient(runner)

        await docker.login("us-central1-docker.pkg.dev", "access-token", env={"A": "1"})

        call = runner.calls[0]
        assert call.argv == [
            "docker",
            "login",
            "-u",
            "oauth2accesstoken",
            "--password-stdin",
            "https://us-central1-docker.pkg.dev",
        ]
        assert call.stdin == "access-token"
        # Token never appears on the command line
        assert "access-token" not in call.argv

    @pytest.mark.asyncio
    async def test_native_login(self, runner):
        docker = DockerClient(runner)

        await docker.login("myregistry.azurecr.io", native=True)

        assert runner.calls[0].argv == ["az", "acr", "login", "--name", "myregistry"]

    @pytest.mark.asyncio
    async def test_login_needs_a_method(self, runner):
        with pytest.raises(ValueError):
            await DockerClient(runner).login("registry.example.com")

        assert runner.calls == []

    @pytest.mark.asyncio
    async def test_login_failure_propagates(self, runner):
        runner.respond(("docker", "login"), returncode=1)

        with pytest.raises(CommandError):
            await DockerClient(runner).login("registry.example.com", "token")


class TestDockerPull:
    """Tests for cache pull."""

    @pytest.mark.asyncio
    async def test_hit(self, runner):
        assert await DockerClient(runner).pull(IMAGE) is True
        assert runner.calls[0].argv == ["docker", "pull", IMAGE]

    @pytest.mark.asyncio
    async def test_miss_is_not_an_error(self, runner):
        runner.respond(("docker", "pull"), returncode=1)

        assert await DockerClient(runner).pull(IMAGE) is False

    @pytest.mark.asyncio
    async def test_missing_binary_is_a_miss(self):
        class NoDocker(CommandRunner):
            async def run(self, argv, **kwargs):
                raise FileNotFoundError("docker")

        assert await DockerClient(NoDocker()).pull(IMAGE) is False


class TestDockerBuild:
    """Tests for image build."""

    @pytest.mark.asyncio
    async def test_build_without_cache(self, runner, tmp_path):
        await DockerClient(runner).build(IMAGE, tmp_path, env={"PATH": "/usr/bin"})

        call = runner.calls[0]
        assert call.argv == [
            "docker",
            "build",
            "--platform",
            "linux/amd64",
            "--build-arg",
            "BUILDKIT_INLINE_CACHE=1",
            "-t",
            IMAGE,
            str(tmp_path),
        ]
        assert "--cache-from" not in call.argv
        assert call.env["DOCKER_BUILDKIT"] == "1"
        assert call.env["PATH"] == "/usr/bin"

    @pytest.mark.asyncio
    async def test_build_with_cache_dockerfile_and_args(self, runner, tmp_path):
        await DockerClient(runner).build(
            IMAGE,
            tmp_path,
            cache_from=IMAGE,
            dockerfile="docker/Dockerfile.prod",
            build_args={"API_URL": "https://api.example.com"},
            env={},
        )

        argv = runner.calls[0].argv
        assert argv[argv.index("--cache-from") + 1] == IMAGE
        assert argv[argv.index("-f") + 1] == "docker/Dockerfile.prod"
        assert "API_URL=https://api.example.com" in argv
        assert argv[-3:] == ["-t", IMAGE, str(tmp_path)]

    @pytest.mark.asyncio
    async def test_build_failure_propagates(self, runner, tmp_path):
        runner.respond(("docker", "build"), returncode=1)

        with pytest.raises(CommandError):
            await DockerClient(runner).build(IMAGE, tmp_path, env={})


class TestDockerPush:
    """Tests for image push."""

    @pytest.mark.asyncio
    async def test_push(self, runner):
        await DockerClient(runner).push(IMAGE)

        assert runner.calls[0].argv == ["docker", "push", IMAGE]

    @pytest.mark.asyncio
    async def test_push_failure_propagates(self, runner):
        runner.respond(("docker", "push"), returncode=1)

        with pytest.raises(CommandError):
            await DockerClient(runner).push(IMAGE)
