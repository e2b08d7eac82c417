from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ppcup.api.participants import router as participants_router
from ppcup.api.pool import router as pool_router
from ppcup.api.players import router as players_router
from ppcup.api.history import router as history_router
from ppcup.api.admin import router as admin_router
from ppcup.errors import PersistenceFailure
from ppcup.logger import setup_logger

logger = setup_logger(__name__)

app = FastAPI(title="pp cup API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)


@app.exception_handler(PersistenceFailure)
def persistence_failure(request: Request, exc: PersistenceFailure):
    logger.error(f"{request.method} {request.url.path} failed: {exc}")
    return JSONResponse(status_code=500, content={"detail": "storage unavailable"})


# mount routers
app.include_router(participants_router)
app.include_router(pool_router)
app.include_router(players_router)
app.include_router(history_router)
app.include_router(admin_router)
