from fastapi import APIRouter

from gearflow import __version__
from gearflow.api.schemas import envelope
from gearflow.config import BackendSettings

router = APIRouter(tags=["health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness probe; does not contact the backend."""
    return envelope({
        "status": "ok",
        "version": __version__,
        "backend_configured": BackendSettings.from_env().is_configured,
    })
