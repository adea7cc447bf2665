"""Executor wiring for the API, configured through environment variables."""

import os
from functools import lru_cache

import structlog

from failure_analyst.application.executor import InvestigationExecutor, InvocationRequest
from failure_analyst.application.factory import InvestigationFactory
from failure_analyst.core.domain.errors import FailureAnalystError
from failure_analyst.infrastructure.driver.asyncio_scheduler import AsyncioContinuationScheduler
from failure_analyst.infrastructure.driver.http_scheduler import HttpContinuationScheduler

logger = structlog.get_logger().bind(component="investigations_api")


async def run_invocation(executor: InvestigationExecutor, request: InvocationRequest) -> None:
    """Run one invocation in the background; failures are logged with the session id."""
    try:
        outcome = await executor.handle_invocation(request)
    except (FailureAnalystError, ValueError) as e:
        logger.error(
            "invocation_failed",
            session_id=request.session_id,
            error_type=type(e).__name__,
            error=str(e),
        )
        return
    logger.info(
        "invocation_finished",
        session_id=outcome.session_id,
        is_done=outcome.is_done,
        cycle_count=outcome.cycle_count,
    )


@lru_cache
def get_executor() -> InvestigationExecutor:
    """
    Build the executor used by all routes.

    FAILURE_ANALYST_PROFILE selects the profile (default "dev"),
    FAILURE_ANALYST_CONFIG_DIR the config directory (default "configs") and
    FAILURE_ANALYST_SCHEDULER the continuation mode: "asyncio" (default) runs
    the next step as a task in this process, "http" POSTs it back to
    ``server.public_url``.
    """
    factory = InvestigationFactory(os.getenv("FAILURE_ANALYST_CONFIG_DIR", "configs"))
    profile = os.getenv("FAILURE_ANALYST_PROFILE", "dev")
    scheduler_mode = os.getenv("FAILURE_ANALYST_SCHEDULER", "asyncio")

    if scheduler_mode == "http":
        config = factory.load_profile(profile)
        public_url = (config.get("server", {}) or {}).get("public_url", "http://localhost:8070")
        return factory.create_executor(profile, scheduler=HttpContinuationScheduler(public_url))

    if scheduler_mode != "asyncio":
        raise ValueError(f"Unknown scheduler mode: {scheduler_mode}")

    scheduler = AsyncioContinuationScheduler()
    executor = factory.create_executor(profile, scheduler=scheduler)
    scheduler.set_handler(
        lambda payload: run_invocation(executor, InvocationRequest.from_payload(payload))
    )
    return executor
