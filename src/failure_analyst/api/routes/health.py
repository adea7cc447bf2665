from fastapi import APIRouter

from failure_analyst import __version__

router = APIRouter()


@router.get("/health")
async def health_check():
    """Liveness probe."""
    return {"status": "healthy", "version": __version__}
