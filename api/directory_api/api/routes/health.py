from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from directory_api.core.config import get_settings
from directory_api.services.repository import RepositoryUnavailableError, get_repository

router = APIRouter()


@router.get("/")
async def root() -> dict[str, str]:
    return {"status": "ok", "service": get_settings().app_name}


@router.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/readyz")
async def readyz(repository=Depends(get_repository)):
    try:
        await repository.ping()
    except RepositoryUnavailableError as exc:
        return JSONResponse(status_code=503, content={"status": "unavailable", "error": str(exc)})
    return {"status": "ready"}
