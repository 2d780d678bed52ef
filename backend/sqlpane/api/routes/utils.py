from fastapi import APIRouter

router = APIRouter(prefix="/utils", tags=["utils"])


@router.get("/health-check/")
async def health_check() -> bool:
    """
    Liveness probe: the process is up and its event loop is responsive.

    No backend I/O; sessions are opened per query with caller-supplied
    connection strings.
    """
    return True
