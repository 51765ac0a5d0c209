from fastapi import APIRouter, Request

from app.models import HealthChecks, HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    ollama_ok = await request.app.state.ollama_client.is_available()
    database_ok = await request.app.state.repository.ping()
    return HealthResponse(
        status="ok" if ollama_ok and database_ok else "degraded",
        checks=HealthChecks(ollama=ollama_ok, database=database_ok),
    )
