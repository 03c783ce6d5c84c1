"""Unit tests for the pulumi client."""

from pathlib import Path

import pytest

from branch_deploy.core.exceptions import CommandError
from branch_deploy.services.pulumi import PulumiClient

BACKEND = "gs://my-state-bucket"
STACK = "organization/app/demo-feature-abc"


class TestGetOutputs:
    """Tests for reading shared infrastructure outputs."""

    @pytest.mark.asyncio
    async def test_reads_each_key(self, runner, tmp_path: Path):
        runner.respond(
            ("pulumi", "stack", "output", "registryUrl"),
            stdout="us-central1-docker.pkg.dev/my-project/apps\n",
        )
        runner.respond(("pulumi", "stack", "output", "projectId_"), stdout="  my-project\n")

        outputs = await PulumiClient(runner).get_outputs(
            "organization/infrastructure/prod",
            tmp_path,
            ["registryUrl", "projectId_"],
            BACKEND,
            env={"PULUMI_CONFIG_PASSPHRASE": "x"},
        )

        assert outputs == {
            "registryUrl": "us-central1-docker.pkg.dev/my-project/apps",
            "projectId_": "my-project",
        }
        assert [c.argv for c in runner.calls] == [
            ["npm", "ci", "--silent"],
            ["pulumi", "login", BACKEND],
            [
                "pulumi",
                "stack",
                "output",
                "registryUrl",
                "-s",
                "organization/infrastructure/prod",
                "--show-secrets",
            ],
            [
                "pulumi",
                "stack",
                "output",
                "projectId_",
                "-s",
                "organization/infrastructure/prod",
                "--show-secrets",
            ],
        ]
        assert all(c.cwd == tmp_path for c in runner.calls)

    @pytest.mark.asyncio
    async def test_missing_output_is_fatal(self, runner, tmp_path: Path):
        runner.respond(("pulumi", "stack", "output"), returncode=255)

        with pytest.raises(CommandError):
            await PulumiClient(runner).get_outputs("ref", tmp_path, ["registryUrl"], BACKEND)


class TestApply:
    """Tests for applying an app stack."""

    @pytest.mark.asyncio
    async def test_apply(self, runner, tmp_path: Path):
        runner.respond(("pulumi", "stack", "select"), returncode=255)
        runner.respond(("pulumi", "stack", "output", "url"), stdout="https://demo.run.app\n")
        runner.respond(
            ("pulumi", "stack", "output", "serviceName_"), stdout="demo-feature-abc\n"
        )

        result = await PulumiClient(runner).apply(
            STACK,
            tmp_path,
            {"appName": "demo", "imageTag": "feature-abc"},
            BACKEND,
        )

        assert result.url == "https://demo.run.app"
        assert result.service_name == "demo-feature-abc"

        argvs = [c.argv for c in runner.calls]
        assert ["pulumi", "stack", "select", STACK, "--create"] in argvs
        assert ["pulumi", "config", "set", "appName", "demo"] in argvs
        assert ["pulumi", "config", "set", "imageTag", "feature-abc"] in argvs
        assert argvs.index(["pulumi", "up", "--yes"]) > argvs.index(
            ["pulumi", "config", "set", "imageTag", "feature-abc"]
        )

    @pytest.mark.asyncio
    async def test_custom_output_names(self, runner, tmp_path: Path):
        runner.respond(("pulumi", "stack", "output", "containerAppName"), stdout="demo-main\n")

        result = await PulumiClient(runner).apply(
            STACK,
            tmp_path,
            {},
            "azblob://state?storage_account=pulumistate",
            service_name_output="containerAppName",
        )

        assert result.service_name == "demo-main"

    @pytest.mark.asyncio
    async def test_up_failure_is_fatal(self, runner, tmp_path: Path):
        runner.respond(("pulumi", "up"), returncode=1)

        with pytest.raises(CommandError):
            await PulumiClient(runner).apply(STACK, tmp_path, {}, BACKEND)


class TestDestroy:
    """Tests for destroying an app stack."""

    @pytest.mark.asyncio
    async def test_missing_stack(self, runner, tmp_path: Path):
        runner.respond(("pulumi", "stack", "select"), returncode=255)

        destroyed = await PulumiClient(runner).destroy(STACK, tmp_path, BACKEND)

        assert destroyed is False
        assert runner.argvs("pulumi", "destroy") == []
        assert runner.argvs("pulumi", "stack", "rm") == []

    @pytest.mark.asyncio
    async def test_destroy(self, runner, tmp_path: Path):
        destroyed = await PulumiClient(runner).destroy(
            STACK, tmp_path, BACKEND, extra_config={"gcp:project": "my-project"}
        )

        assert destroyed is True
        assert [c.argv for c in runner.calls][2:] == [
            ["pulumi", "stack", "select", STACK],
            ["pulumi", "config", "set", "gcp:project", "my-project"],
            ["pulumi", "destroy", "--yes"],
            ["pulumi", "stack", "rm", "--yes"],
        ]

    @pytest.mark.asyncio
    async def test_destroy_failure_is_fatal(self, runner, tmp_path: Path):
        runner.respond(("pulumi", "destroy"), returncode=1)

        with pytest.raises(CommandError):
            await PulumiClient(runner).destroy(STACK, tmp_path, BACKEND)

        assert runner.argvs("pulumi", "stack", "rm") == []
