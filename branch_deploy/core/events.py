"""Pipeline progress events and step narration."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

import click


@dataclass
class Event:
    """A pipeline event."""

    event_type: str
    data: dict[str, Any]
    message: str = ""
    timestamp: datetime = field(default_factory=datetime.utcnow)


class EventBus:
    """Records pipeline events and narrates them for the CI log.

    Every event with a message is echoed to stdout as it happens so an
    operator watching the job can see which stage is in flight.
    """

    def __init__(self, echo: Callable[[str], None] | None = click.echo):
        self._echo = echo
        self.history: list[Event] = []

    async def publish(self, event: Event) -> None:
        """Publish an event."""
        self.history.append(event)
        if event.message and self._echo is not None:
            self._echo(event.message)

    async def publish_stage_started(self, stage: str, message: str = "") -> None:
        """Publish a stage started event."""
        await self.publish(
            Event(event_type="stage_started", data={"stage": stage}, message=message)
        )

    async def publish_stage_completed(
        self, stage: str, duration_ms: int, message: str = ""
    ) -> None:
        """Publish a stage completed event."""
        await self.publish(
            Event(
                event_type="stage_completed",
                data={"stage": stage, "duration_ms": duration_ms},
                message=message,
            )
        )

    async def publish_stage_skipped(self, stage: str, message: str = "") -> None:
        """Publish a stage skipped event."""
        await self.publish(
            Event(event_type="stage_skipped", data={"stage": stage}, message=message)
        )

    async def publish_message(self, message: str) -> None:
        """Publish a free-form narration line."""
        await self.publish(Event(event_type="message", data={}, message=message))

    async def publish_deployment_complete(self, url: str) -> None:
        """Publish a deployment complete event."""
        await self.publish(
            Event(
                event_type="deployment_complete",
                data={"url": url},
                message="\nDeployment successful!\n",
            )
        )

    async def publish_error(self, error: str, stage: str | None = None) -> None:
        """Publish an error event. Not echoed; the CLI reports errors on stderr."""
        await self.publish(
            Event(event_type="error", data={"error": error, "stage": stage})
        )

    def stages(self, event_type: str) -> list[str]:
        """Stage names of recorded events of one type, in order."""
        return [e.data["stage"] for e in self.history if e.event_type == event_type]
