from time import perf_counter

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy import text

from src.shared.database import get_session_factory
from src.shared.redis import get_redis

router = APIRouter(tags=["Health"])


@router.get("/_health/redis")
async def health_redis(request: Request):
    settings = request.app.state.settings
    if not settings.redis_url:
        return {"service": "redis", "status": "disabled"}
    try:
        pong = await get_redis(settings).ping()
        return {"service": "redis", "status": "ok" if pong else "degraded"}
    except Exception:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"service": "redis", "status": "unavailable"},
        )


@router.get("/_health/db", status_code=status.HTTP_200_OK)
async def health_db(request: Request):
    Session = get_session_factory(request.app.state.settings)
    t0 = perf_counter()
    try:
        async with Session() as s:
            await s.execute(text("SELECT 1"))
        dt_ms = int((perf_counter() - t0) * 1000)
        return {"ok": True, "checks": {"db_select_1_ms": dt_ms}}
    except Exception as e:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "ok": False,
                "checks": {"db": "SELECT 1 failed"},
                "error": type(e).__name__,
                "detail": str(e),
            },
        )
