"""Post-deploy health verification."""

import asyncio
from typing import Awaitable, Callable

import httpx

from branch_deploy.core.exceptions import HealthCheckError
from branch_deploy.utils.logging import get_logger

logger = get_logger(__name__)


class HealthVerifier:
    """Polls an endpoint with a fixed delay between attempts.

    The delay is constant; there is no backoff.
    """

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        notify: Callable[[str], Awaitable[None]] | None = None,
    ):
        self.transport = transport
        self.sleep = sleep
        self.notify = notify

    async def _say(self, message: str) -> None:
        if self.notify is not None:
            await self.notify(message)

    async def check(
        self,
        url: str,
        max_attempts: int = 6,
        delay_seconds: float = 10,
        timeout_seconds: float = 5,
    ) -> int:
        """Wait for ``url`` to answer with a 2xx status.

        Returns:
            The attempt number that succeeded

        Raises:
            HealthCheckError: every attempt failed
        """
        last_error: str | None = None

        async with httpx.AsyncClient(
            transport=self.transport,
            timeout=timeout_seconds,
            follow_redirects=True,
        ) as client:
            for attempt in range(1, max_attempts + 1):
                try:
                    # Bounds the whole attempt; httpx limits each phase separately
                    response = await asyncio.wait_for(client.get(url), timeout_seconds)
                    if response.is_success:
                        logger.info("health.passed", url=url, attempt=attempt)
                        await self._say(
                            f"Health check passed on attempt {attempt}/{max_attempts}"
                        )
                        return attempt
                    last_error = f"HTTP {response.status_code}"
                except asyncio.TimeoutError:
                    last_error = f"Timed out after {timeout_seconds:g}s"
                except Exception as e:
                    last_error = str(e) or type(e).__name__

                logger.warning(
                    "health.attempt_failed",
                    url=url,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error=last_error,
                )

                if attempt < max_attempts:
                    await self._say(
                        f"Health check attempt {attempt}/{max_attempts} failed: {last_error}"
                    )
                    await self._say(f"Retrying in {delay_seconds:g}s...")
                    await self.sleep(delay_seconds)

        raise HealthCheckError(url, max_attempts, last_error)
