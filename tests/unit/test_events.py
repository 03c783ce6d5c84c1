"""Unit tests for pipeline event recording and narration."""

import pytest

from branch_deploy.core.events import EventBus


class TestEventBus:
    """Tests for EventBus."""

    @pytest.mark.asyncio
    async def test_records_and_echoes(self):
        echoed: list[str] = []
        bus = EventBus(echo=echoed.append)

        await bus.publish_stage_started("build", "Building Docker image...")
        await bus.publish_stage_completed("build", 1200)
        await bus.publish_message("Build complete\n")

        assert [e.event_type for e in bus.history] == [
            "stage_started",
            "stage_completed",
            "message",
        ]
        # Events without a message are recorded but not echoed
        assert echoed == ["Building Docker image...", "Build complete\n"]
        assert bus.history[1].data == {"stage": "build", "duration_ms": 1200}

    @pytest.mark.asyncio
    async def test_errors_are_not_echoed(self):
        echoed: list[str] = []
        bus = EventBus(echo=echoed.append)

        await bus.publish_error("push denied", "push")

        assert echoed == []
        assert bus.history[0].data == {"error": "push denied", "stage": "push"}

    @pytest.mark.asyncio
    async def test_stages_by_type(self):
        bus = EventBus(echo=None)

        await bus.publish_stage_completed("validate", 5)
        await bus.publish_stage_skipped("authenticate")
        await bus.publish_stage_completed("normalize", 1)

        assert bus.stages("stage_completed") == ["validate", "normalize"]
        assert bus.stages("stage_skipped") == ["authenticate"]

    @pytest.mark.asyncio
    async def test_deployment_complete(self):
        bus = EventBus(echo=None)

        await bus.publish_deployment_complete("https://demo.run.app")

        assert bus.history[0].data == {"url": "https://demo.run.app"}
        assert "Deployment successful!" in bus.history[0].message
