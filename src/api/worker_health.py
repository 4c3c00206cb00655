from fastapi import APIRouter, Request

router = APIRouter(prefix="/workers", tags=["workers"])


@router.get("/health")
async def get_workers_health(request: Request):
    """Get health status of the workers embedded in this process."""
    worker = getattr(request.app.state, "dispatch_worker", None)

    health_status = {}
    if worker is not None:
        health_status[worker.worker_name] = worker.get_health_status()

    return {
        "success": True,
        "data": health_status
    }
