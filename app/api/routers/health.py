"""Health check router."""

from fastapi import APIRouter

from app.config import VERSION, settings

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Return liveness plus whether an oracle key is configured."""
    configured = bool(settings.ANTHROPIC_API_KEY or settings.OPENAI_API_KEY)
    return {
        "status": "ok",
        "llm_provider": settings.LLM_PROVIDER,
        "llm_configured": configured,
    }


@router.get("/health/version")
async def health_version() -> dict:
    """Return application version."""
    return {"version": VERSION}
