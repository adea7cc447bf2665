"""Investigation routes: start, invoke one step, inspect and delete sessions."""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from failure_analyst.api.dependencies import get_executor, run_invocation
from failure_analyst.application.executor import InvestigationExecutor, InvocationRequest
from failure_analyst.core.domain.errors import SessionStoreError

router = APIRouter()


class StartInvestigationRequest(BaseModel):
    """Request to start an investigation."""
    context: str = Field(..., min_length=1, description="Description of the failure")
    session_id: Optional[str] = None


class InvokeRequest(BaseModel):
    """One engine invocation (also used for self re-invocation)."""
    session_id: str
    context: Optional[str] = None


class AcceptedResponse(BaseModel):
    session_id: str
    status: str = "accepted"


class HypothesisResponse(BaseModel):
    id: str
    description: str
    confidence: float
    status: str
    source: str


class InvestigationStatusResponse(BaseModel):
    session_id: str
    engine: str
    state: str
    is_done: bool
    cycle_count: int
    forced_completion: bool
    completion_reason: Optional[str] = None
    final_answer: Optional[str] = None
    hypotheses: list[HypothesisResponse] = []


@router.post("/investigations", response_model=AcceptedResponse, status_code=202)
async def start_investigation(
    request: StartInvestigationRequest,
    background_tasks: BackgroundTasks,
    executor: InvestigationExecutor = Depends(get_executor),
):
    """Create a session and run its first step in the background."""
    session_id = request.session_id or executor.generate_session_id()
    try:
        await executor.start_or_resume_session(session_id, request.context)
    except (ValueError, SessionStoreError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    background_tasks.add_task(run_invocation, executor, InvocationRequest(session_id))
    return AcceptedResponse(session_id=session_id)


@router.post("/investigations/invoke", response_model=AcceptedResponse, status_code=202)
async def invoke_investigation(
    request: InvokeRequest,
    background_tasks: BackgroundTasks,
    executor: InvestigationExecutor = Depends(get_executor),
):
    """Run one step of an existing (or new, when context is given) session."""
    background_tasks.add_task(
        run_invocation,
        executor,
        InvocationRequest(session_id=request.session_id, context=request.context),
    )
    return AcceptedResponse(session_id=request.session_id)


@router.get("/investigations/{session_id}", response_model=InvestigationStatusResponse)
async def get_investigation(
    session_id: str,
    executor: InvestigationExecutor = Depends(get_executor),
):
    try:
        session = await executor.store.load(session_id)
    except SessionStoreError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if session is None:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")

    return InvestigationStatusResponse(
        session_id=session.session_id,
        engine=session.engine.value,
        state=session.state.value,
        is_done=session.is_completed,
        cycle_count=session.cycle_count,
        forced_completion=session.forced_completion,
        completion_reason=session.completion_reason.value if session.completion_reason else None,
        final_answer=session.final_answer,
        hypotheses=[
            HypothesisResponse(
                id=h.id,
                description=h.description,
                confidence=h.confidence,
                status=h.status.value,
                source=h.source.value,
            )
            for h in session.hypotheses
        ],
    )


@router.delete("/investigations/{session_id}", status_code=204)
async def delete_investigation(
    session_id: str,
    executor: InvestigationExecutor = Depends(get_executor),
):
    try:
        deleted = await executor.store.delete(session_id)
    except SessionStoreError as e:
        raise HTTPException(status_code=400, detail=str(e))
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Session '{session_id}' not found")
    return Response(status_code=204)
