from fastapi import APIRouter, Request
from pydantic import BaseModel

from floodgate.config import get_settings
from floodgate.core.policy import get_client_ip

router = APIRouter()

# Never rate limited, see skip_health_checks().
HEALTH_PATH = "/health"

# Reported by /health before the lifespan has built a limiter, or when the
# strategy reports no store state.
STORE_UNINITIALIZED = "uninitialized"


class HealthResponse(BaseModel):
    status: str
    store: str
    preset: str


def skip_health_checks(request: Request) -> bool:
    return request.url.path == HEALTH_PATH


@router.get(HEALTH_PATH, response_model=HealthResponse)
async def health_check(request: Request):
    settings = get_settings()
    limiter = getattr(request.app.state, "limiter", None)
    state = limiter.strategy.store_state if limiter is not None else None
    return HealthResponse(
        status="healthy",
        store=state.value if state is not None else STORE_UNINITIALIZED,
        preset=settings.rate_limit_preset.value,
    )


@router.get("/")
async def root():
    return {
        "service": get_settings().app_name,
        "message": "Rate limiting service is running",
    }


@router.get("/test")
async def test_endpoint(request: Request):
    return {
        "message": "Request allowed",
        "client": get_client_ip(request),
    }
