"""Deploy and cleanup pipelines.

Deploy stages, strictly in order:

    validate -> normalize -> authenticate -> fetch_shared_outputs ->
    registry_login -> cache_pull -> build -> push -> apply_app_stack ->
    health_check -> persist_result

Cleanup stages:

    validate -> normalize -> authenticate -> destroy

``authenticate`` is skipped on Azure, where the Azure SDK federates the CI
token itself. Each stage's external effects finish before the next stage
starts.
"""

import os
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable, Mapping

from branch_deploy.config import Settings, get_settings
from branch_deploy.core.cloud import Cloud, get_profile
from branch_deploy.core.context import ExecutionContext
from branch_deploy.core.events import EventBus
from branch_deploy.models.deployment import (
    DeploymentRequest,
    DeployResult,
    InfraOutputs,
    ResourceConfig,
    collect_build_args,
)
from branch_deploy.models.environment import AzureEnvironment, GcpEnvironment
from branch_deploy.models.run import DeploymentRun, RunStatus, Stage, StageStatus
from branch_deploy.services.credentials import (
    GcpCredentialExchanger,
    verify_azure_credentials,
)
from branch_deploy.services.docker import DockerClient
from branch_deploy.services.health import HealthVerifier
from branch_deploy.services.naming import image_reference, normalize_branch, stack_identifier
from branch_deploy.services.pulumi import PulumiClient
from branch_deploy.services.validation import validate_environment
from branch_deploy.utils.logging import get_logger


def _gcp_app_config(ctx: ExecutionContext, settings: Settings) -> dict[str, str]:
    env: GcpEnvironment = ctx.environment  # type: ignore[assignment]
    resources = ctx.resources
    config = {
        "gcp:project": env.gcp_project,
        "appName": ctx.request.app_name,
        "imageTag": ctx.service_name,
        "infraStackRef": settings.infra_stack_ref,
        "region": env.gcp_region,
        "memoryLimit": resources.memory,
        "cpuLimit": resources.cpu,
        "minInstances": str(resources.min_instances),
        "maxInstances": str(resources.max_instances),
        "containerPort": str(resources.port),
        "allowUnauthenticated": str(resources.allow_unauthenticated).lower(),
    }
    if resources.runtime_sa:
        config["runtimeServiceAccountEmail"] = resources.runtime_sa
    if resources.custom_domain:
        config["customDomain"] = resources.custom_domain
    return config


def _azure_app_config(ctx: ExecutionContext, settings: Settings) -> dict[str, str]:
    env: AzureEnvironment = ctx.environment  # type: ignore[assignment]
    resources = ctx.resources
    return {
        "azure-native:location": env.azure_location,
        "appName": ctx.request.app_name,
        "imageTag": ctx.service_name,
        "infraStackRef": settings.infra_stack_ref,
        "cpuLimit": resources.cpu,
        "memoryLimit": resources.memory,
        "targetPort": str(resources.port),
    }


def _gcp_destroy_config(ctx: ExecutionContext) -> dict[str, str]:
    env: GcpEnvironment = ctx.environment  # type: ignore[assignment]
    return {"gcp:project": env.gcp_project}


APP_CONFIG_BUILDERS: dict[Cloud, Callable[[ExecutionContext, Settings], dict[str, str]]] = {
    Cloud.GCP: _gcp_app_config,
    Cloud.AZURE: _azure_app_config,
}

DESTROY_CONFIG_BUILDERS: dict[Cloud, Callable[[ExecutionContext], dict[str, str]]] = {
    Cloud.GCP: _gcp_destroy_config,
    Cloud.AZURE: lambda ctx: {},
}


class DeployPipeline:
    """Runs the deploy and cleanup sequences for one (app, branch, cloud).

    Failure contract: nothing is rolled back. A failure in apply_app_stack
    or health_check leaves the pushed image in the registry and any
    partially applied cloud resources in place. Recovery is to re-run the
    pipeline, which converges on the same stack and image tag. Adding
    automatic teardown here would change that contract.

    Only the health check is retried; every other stage fails on its
    first error.
    """

    def __init__(
        self,
        docker: DockerClient | None = None,
        pulumi: PulumiClient | None = None,
        exchanger: GcpCredentialExchanger | None = None,
        health: HealthVerifier | None = None,
        events: EventBus | None = None,
        settings: Settings | None = None,
        env: Mapping[str, str] | None = None,
    ):
        self.settings = settings or get_settings()
        self.events = events or EventBus()
        self.docker = docker or DockerClient()
        self.pulumi = pulumi or PulumiClient()
        self.exchanger = exchanger or GcpCredentialExchanger()
        self.health = health or HealthVerifier(notify=self.events.publish_message)
        # Snapshot; stages never write to the process environment
        self.env = dict(env) if env is not None else dict(os.environ)
        self.logger = get_logger("pipeline")
        self.current_run: DeploymentRun | None = None

    async def deploy(self, request: DeploymentRequest) -> DeployResult:
        """Build, push, provision and verify. Returns the deployed URL and service."""
        run = self._start_run("deploy", request)
        await self.events.publish_message(
            f"\n=== Deploying {request.app_name} to {request.cloud.value.upper()} "
            f"(branch: {request.branch_name}) ===\n"
        )

        try:
            ctx = await self._validate(run, request, resolve_resources=True)
            await self._normalize(run, ctx)
            await self._authenticate(run, ctx)
            infra = await self._fetch_shared_outputs(run, ctx)
            await self._registry_login(run, ctx, infra)

            image = image_reference(infra.registry_url, request.app_name, ctx.service_name)
            run.image_ref = image

            cached = await self._cache_pull(run, ctx, image)
            await self._build(run, ctx, image, cached)
            await self._push(run, ctx, image)
            result = await self._apply_app_stack(run, ctx)
            await self._health_check(run, result)
            await self._persist_result(run, result)
        except Exception as e:
            await self._fail_run(run, e)
            raise

        run.url = result.url
        self._finish_run(run)
        await self.events.publish_deployment_complete(result.url)
        return result

    async def cleanup(self, request: DeploymentRequest) -> bool:
        """Destroy the app stack for a branch.

        Returns:
            True if a stack was destroyed, False if none existed
        """
        run = self._start_run("cleanup", request)
        await self.events.publish_message(
            f"\n=== Cleaning up {request.app_name} on {request.cloud.value.upper()} "
            f"(branch: {request.branch_name}) ===\n"
        )

        try:
            ctx = await self._validate(run, request, resolve_resources=False)
            await self._normalize(run, ctx)
            await self.events.publish_message(
                f"Cleaning up stack '{ctx.stack_name}' for branch '{request.branch_name}'\n"
            )
            await self._authenticate(run, ctx)
            destroyed = await self._destroy(run, ctx)
        except Exception as e:
            await self._fail_run(run, e)
            raise

        self._finish_run(run)
        if destroyed:
            await self.events.publish_message(
                f"\n=== Cleanup complete for branch '{request.branch_name}' ===\n"
            )
        else:
            await self.events.publish_message(
                f"\n=== No resources found for branch '{request.branch_name}' ===\n"
            )
        return destroyed

    def _start_run(self, command: str, request: DeploymentRequest) -> DeploymentRun:
        run = DeploymentRun(
            command=command,
            cloud=request.cloud,
            app_name=request.app_name,
            branch_name=request.branch_name,
            status=RunStatus.RUNNING,
        )
        self.current_run = run
        self.logger.info(
            "pipeline.started",
            run_id=str(run.id),
            command=command,
            cloud=request.cloud.value,
            app=request.app_name,
            branch=request.branch_name,
        )
        return run

    def _finish_run(self, run: DeploymentRun) -> None:
        run.status = RunStatus.SUCCEEDED
        run.completed_at = datetime.utcnow()
        self.logger.info(
            "pipeline.completed",
            run_id=str(run.id),
            command=run.command,
            url=run.url,
        )

    async def _fail_run(self, run: DeploymentRun, error: Exception) -> None:
        run.status = RunStatus.FAILED
        run.completed_at = datetime.utcnow()
        self.logger.error(
            "pipeline.failed",
            run_id=str(run.id),
            stage=run.error_stage.value if run.error_stage else None,
            error=str(error),
        )
        await self.events.publish_error(
            str(error), run.error_stage.value if run.error_stage else None
        )

    @asynccontextmanager
    async def _stage(
        self, run: DeploymentRun, stage: Stage, message: str = ""
    ) -> AsyncIterator[None]:
        """Track one stage: mark it in progress, then completed or failed."""
        run.update_stage(stage, StageStatus.IN_PROGRESS)
        await self.events.publish_stage_started(stage.value, message)
        self.logger.info("pipeline.stage.started", run_id=str(run.id), stage=stage.value)

        try:
            yield
        except Exception as e:
            run.update_stage(stage, StageStatus.FAILED, error=str(e))
            self.logger.error(
                "pipeline.stage.failed",
                run_id=str(run.id),
                stage=stage.value,
                error=str(e),
            )
            raise

        run.update_stage(stage, StageStatus.COMPLETED)
        duration_ms = run.stages[stage].duration_ms or 0
        await self.events.publish_stage_completed(stage.value, duration_ms)
        self.logger.info(
            "pipeline.stage.completed",
            run_id=str(run.id),
            stage=stage.value,
            duration_ms=duration_ms,
        )

    async def _validate(
        self, run: DeploymentRun, request: DeploymentRequest, resolve_resources: bool
    ) -> ExecutionContext:
        profile = get_profile(request.cloud)
        azure_config = None

        async with self._stage(run, Stage.VALIDATE, "Validating environment..."):
            environment = validate_environment(self.env, request.cloud)
            if not profile.exchanges_credentials:
                azure_config = verify_azure_credentials(self.env)

            ctx = ExecutionContext(
                request=request,
                profile=profile,
                environment=environment,
                base_env=self.env,
            )
            if resolve_resources:
                ctx.resources = ResourceConfig.resolve(request, profile, self.env)
                ctx.build_args = collect_build_args(request.build_args_from_env, self.env)

        await self.events.publish_message("Environment validated\n")
        if azure_config is not None:
            await self.events.publish_message(
                f"Azure OIDC configured for tenant {azure_config.tenant_id}"
            )

        if resolve_resources:
            await self._describe_resources(ctx)
        return ctx

    async def _describe_resources(self, ctx: ExecutionContext) -> None:
        resources = ctx.resources
        if ctx.profile.cloud == Cloud.GCP:
            await self.events.publish_message(
                f"Resources: memory={resources.memory}, cpu={resources.cpu}, "
                f"minInstances={resources.min_instances}, "
                f"maxInstances={resources.max_instances}"
            )
            if resources.runtime_sa:
                await self.events.publish_message(f"Runtime SA: {resources.runtime_sa}")
            if resources.custom_domain:
                await self.events.publish_message(f"Custom Domain: {resources.custom_domain}")
        else:
            await self.events.publish_message(
                f"Resources: memory={resources.memory}, cpu={resources.cpu}"
            )
        if ctx.build_args:
            await self.events.publish_message(f"Build args: {', '.join(ctx.build_args)}")

    async def _normalize(self, run: DeploymentRun, ctx: ExecutionContext) -> None:
        request = ctx.request
        async with self._stage(run, Stage.NORMALIZE):
            ctx.service_name = normalize_branch(
                request.branch_name, ctx.profile.max_name_length
            )
            ctx.stack_name = stack_identifier(
                self.settings.stack_org, request.app_name, ctx.service_name
            )
            run.service_name = ctx.service_name
            run.stack_name = ctx.stack_name

        await self.events.publish_message(
            f"Branch '{request.branch_name}' normalized to '{ctx.service_name}'\n"
        )

    async def _authenticate(self, run: DeploymentRun, ctx: ExecutionContext) -> None:
        if not ctx.profile.exchanges_credentials:
            run.update_stage(Stage.AUTHENTICATE, StageStatus.SKIPPED)
            await self.events.publish_stage_skipped(
                Stage.AUTHENTICATE.value,
                "Azure OIDC authentication configured by CI workflow\n",
            )
            return

        async with self._stage(run, Stage.AUTHENTICATE, "Exchanging WIF token..."):
            ctx.credential = await self.exchanger.exchange_for(ctx.environment)
        await self.events.publish_message("WIF token obtained\n")

    async def _fetch_shared_outputs(
        self, run: DeploymentRun, ctx: ExecutionContext
    ) -> InfraOutputs:
        cloud = ctx.profile.cloud.value
        keys = dict(ctx.profile.infra_output_keys)

        async with self._stage(
            run, Stage.FETCH_SHARED_OUTPUTS, "Getting infrastructure outputs..."
        ):
            outputs = await self.pulumi.get_outputs(
                self.settings.infra_stack_ref,
                self.settings.stack_dir(cloud, "infrastructure"),
                list(keys.values()),
                ctx.profile.backend_url(ctx.environment.state_store),
                env=ctx.process_env(),
            )
            infra = InfraOutputs(
                **{field: outputs[key] for field, key in keys.items()}
            )

        await self.events.publish_message(f"Registry URL: {infra.registry_url}\n")
        return infra

    async def _registry_login(
        self, run: DeploymentRun, ctx: ExecutionContext, infra: InfraOutputs
    ) -> None:
        registry = infra.registry_url.split("/", 1)[0]

        async with self._stage(run, Stage.REGISTRY_LOGIN, f"Logging into {registry}..."):
            if ctx.profile.native_registry_login:
                await self.docker.login(registry, native=True, env=ctx.process_env())
            else:
                await self.docker.login(
                    registry,
                    ctx.credential.access_token if ctx.credential else None,
                    env=ctx.process_env(),
                )
        await self.events.publish_message("Docker login successful\n")

    async def _cache_pull(
        self, run: DeploymentRun, ctx: ExecutionContext, image: str
    ) -> bool:
        async with self._stage(run, Stage.CACHE_PULL, f"Pulling {image} for cache..."):
            cached = await self.docker.pull(image, env=ctx.process_env())
            run.stages[Stage.CACHE_PULL].metadata["cache_hit"] = cached

        await self.events.publish_message(
            "Existing image pulled for caching\n" if cached else "No existing image (first build)\n"
        )
        return cached

    async def _build(
        self, run: DeploymentRun, ctx: ExecutionContext, image: str, cached: bool
    ) -> None:
        request = ctx.request
        async with self._stage(run, Stage.BUILD, "Building Docker image..."):
            await self.docker.build(
                image,
                request.context,
                cache_from=image if cached else None,
                dockerfile=request.dockerfile,
                build_args=ctx.build_args or None,
                env=ctx.process_env(),
            )
        await self.events.publish_message("Build complete\n")

    async def _push(self, run: DeploymentRun, ctx: ExecutionContext, image: str) -> None:
        async with self._stage(run, Stage.PUSH, "Pushing Docker image..."):
            await self.docker.push(image, env=ctx.process_env())
        await self.events.publish_message("Push complete\n")

    async def _apply_app_stack(
        self, run: DeploymentRun, ctx: ExecutionContext
    ) -> DeployResult:
        profile = ctx.profile
        config = APP_CONFIG_BUILDERS[profile.cloud](ctx, self.settings)

        async with self._stage(run, Stage.APPLY_APP_STACK, "Deploying app stack..."):
            result = await self.pulumi.apply(
                ctx.stack_name,
                self.settings.stack_dir(profile.cloud.value, "app"),
                config,
                profile.backend_url(ctx.environment.state_store),
                url_output=profile.url_output,
                service_name_output=profile.service_name_output,
                env=ctx.process_env(),
            )

        await self.events.publish_message(f"Deployed to {result.url}\n")
        return result

    async def _health_check(self, run: DeploymentRun, result: DeployResult) -> None:
        url = f"{result.url.rstrip('/')}{self.settings.health_path}"

        async with self._stage(run, Stage.HEALTH_CHECK, "Running health check..."):
            attempts = await self.health.check(
                url,
                max_attempts=self.settings.health_max_attempts,
                delay_seconds=self.settings.health_delay_seconds,
                timeout_seconds=self.settings.health_timeout_seconds,
            )
            run.stages[Stage.HEALTH_CHECK].metadata["attempts"] = attempts

    async def _persist_result(self, run: DeploymentRun, result: DeployResult) -> None:
        path = self.settings.result_path

        async with self._stage(run, Stage.PERSIST_RESULT):
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(result.url)
            run.stages[Stage.PERSIST_RESULT].metadata["path"] = str(path)

    async def _destroy(self, run: DeploymentRun, ctx: ExecutionContext) -> bool:
        profile = ctx.profile

        async with self._stage(run, Stage.DESTROY, f"Destroying stack '{ctx.stack_name}'..."):
            destroyed = await self.pulumi.destroy(
                ctx.stack_name,
                self.settings.stack_dir(profile.cloud.value, "app"),
                profile.backend_url(ctx.environment.state_store),
                extra_config=DESTROY_CONFIG_BUILDERS[profile.cloud](ctx),
                env=ctx.process_env(),
            )
            run.stages[Stage.DESTROY].metadata["destroyed"] = destroyed

        if not destroyed:
            await self.events.publish_message(
                f"No stack found for '{ctx.stack_name}', nothing to clean up"
            )
        return destroyed
