"""
HTTP Continuation Scheduler

Re-invokes the service asynchronously by POSTing the invocation payload to
its own ``/invoke`` endpoint, which answers 202 and runs the step in the
background. Each step therefore runs in a fresh request with its own time
budget.
"""

import asyncio
from typing import Any

import aiohttp
import structlog

from failure_analyst.core.domain.errors import ContinuationError

INVOKE_PATH = "/api/v1/investigations/invoke"


class HttpContinuationScheduler:
    def __init__(self, base_url: str, timeout: float = 10.0):
        self.invoke_url = base_url.rstrip("/") + INVOKE_PATH
        self.timeout = timeout
        self.logger = structlog.get_logger().bind(component="http_scheduler")

    async def schedule_continuation(self, session_id: str, payload: dict[str, Any]) -> None:
        """
        POST the payload to the invoke endpoint.

        Raises:
            ContinuationError: If the request fails or is not accepted
        """
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self.invoke_url,
                    json=payload,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    response.raise_for_status()
                    status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.error("continuation_request_failed", session_id=session_id, error=str(e))
            raise ContinuationError(session_id, e) from e

        self.logger.info("continuation_requested", session_id=session_id, status_code=status)
