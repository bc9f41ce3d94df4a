import logging

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import InterfaceError, OperationalError

from . import config
from .database import Base, SessionLocal, engine
from .errors import StorageUnavailableError
from .models import Tournament
from .routes import groups, matches, playoffs, schedule, teams, tournaments

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Tournament Competition Engine API",
    version="1.0.0",
    description=(
        "Round-robin groups, court scheduling under team restrictions, tennis-style "
        "results with standings, and seeded playoff brackets."
    ),
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

Base.metadata.create_all(bind=engine)


def seed_if_empty() -> None:
    if not config.AUTO_SEED_ON_EMPTY:
        return

    db = SessionLocal()
    try:
        has_tournaments = db.query(Tournament.id).first() is not None
    finally:
        db.close()

    if has_tournaments:
        return

    from seed import seed

    logger.info("Database is empty, loading demo tournament")
    seed(demo_progress=False)


seed_if_empty()


@app.exception_handler(StorageUnavailableError)
@app.exception_handler(OperationalError)
@app.exception_handler(InterfaceError)
async def storage_unavailable_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.warning("Storage unavailable while serving %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Storage is unavailable. Retry the request."},
    )


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


app.include_router(tournaments.router, prefix="/tournaments")
app.include_router(teams.router, prefix="/tournaments")
app.include_router(schedule.router, prefix="/tournaments")
app.include_router(groups.router, prefix="/tournaments")
app.include_router(playoffs.router, prefix="/tournaments")
app.include_router(matches.router, prefix="/matches")
