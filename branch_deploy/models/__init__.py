"""Data models for branch deploy."""

from branch_deploy.models.deployment import (
    DeploymentRequest,
    DeployResult,
    InfraOutputs,
    ResourceConfig,
    collect_build_args,
)
from branch_deploy.models.environment import (
    AzureEnvironment,
    DeployEnvironment,
    GcpEnvironment,
)
from branch_deploy.models.run import (
    DeploymentRun,
    RunStatus,
    Stage,
    StageInfo,
    StageStatus,
)

__all__ = [
    # Deployment models
    "DeploymentRequest",
    "DeployResult",
    "InfraOutputs",
    "ResourceConfig",
    "collect_build_args",
    # Environment models
    "DeployEnvironment",
    "GcpEnvironment",
    "AzureEnvironment",
    # Run models
    "DeploymentRun",
    "RunStatus",
    "Stage",
    "StageInfo",
    "StageStatus",
]
