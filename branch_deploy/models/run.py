"""Per-invocation pipeline state."""

from datetime import datetime
from enum import Enum
from typing import Any, Literal
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from branch_deploy.core.cloud import Cloud


class Stage(str, Enum):
    """Pipeline stages, in the order the deploy pipeline visits them."""

    VALIDATE = "validate"
    NORMALIZE = "normalize"
    AUTHENTICATE = "authenticate"
    FETCH_SHARED_OUTPUTS = "fetch_shared_outputs"
    REGISTRY_LOGIN = "registry_login"
    CACHE_PULL = "cache_pull"
    BUILD = "build"
    PUSH = "push"
    APPLY_APP_STACK = "apply_app_stack"
    HEALTH_CHECK = "health_check"
    PERSIST_RESULT = "persist_result"
    DESTROY = "destroy"


class RunStatus(str, Enum):
    """Overall run status."""

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StageStatus(str, Enum):
    """Individual stage status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class StageInfo(BaseModel):
    """Information about a pipeline stage."""

    status: StageStatus = StageStatus.PENDING
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    error: str | None = None


class DeploymentRun(BaseModel):
    """State of one deploy or cleanup invocation. Never persisted."""

    id: UUID = Field(default_factory=uuid4)
    command: Literal["deploy", "cleanup"]
    cloud: Cloud
    app_name: str
    branch_name: str
    status: RunStatus = RunStatus.PENDING

    # Timestamps
    created_at: datetime = Field(default_factory=datetime.utcnow)
    completed_at: datetime | None = None

    # Naming, filled in by the normalize stage
    service_name: str | None = None
    stack_name: str | None = None
    image_ref: str | None = None

    # Processing state
    current_stage: Stage | None = None
    stages: dict[Stage, StageInfo] = Field(default_factory=dict)

    # Results
    url: str | None = None

    # Error tracking
    error: str | None = None
    error_stage: Stage | None = None

    def update_stage(
        self,
        stage: Stage,
        status: StageStatus,
        metadata: dict[str, Any] | None = None,
        error: str | None = None,
    ) -> None:
        """Update a stage's status."""
        now = datetime.utcnow()

        if stage not in self.stages:
            self.stages[stage] = StageInfo()

        stage_info = self.stages[stage]
        stage_info.status = status

        if status == StageStatus.IN_PROGRESS:
            stage_info.started_at = now
            self.current_stage = stage
        elif status in (StageStatus.COMPLETED, StageStatus.FAILED):
            stage_info.completed_at = now
            if stage_info.started_at:
                stage_info.duration_ms = int(
                    (now - stage_info.started_at).total_seconds() * 1000
                )
            if status == StageStatus.FAILED:
                stage_info.error = error
                self.error = error
                self.error_stage = stage

        if metadata:
            stage_info.metadata.update(metadata)

    @property
    def visited_stages(self) -> list[Stage]:
        """Stages that ran or were skipped, in visiting order."""
        return list(self.stages)
