from fastapi import APIRouter, Request

router = APIRouter(tags=["Health"])


@router.get("/")
def root():
    return {"message": "API is running..."}


@router.get("/api/health")
def health(request: Request):
    """Report the service mode and the database handle's readiness."""
    database = request.app.state.database
    return {
        "status": "ok",
        "environment": request.app.state.settings.app_env,
        "database": "connected" if database.is_ready else "disconnected",
        "state": database.state.value,
    }
