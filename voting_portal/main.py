# main.py
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from pymongo.errors import PyMongoError

from voting_portal.config import CORS_ORIGINS, HEALTH_EXCELLENT_MS, HEALTH_GOOD_MS, MONGO_DB
from voting_portal.database.connection import MongoConnector
from voting_portal.errors import AuthenticationFailure, PortalError
from voting_portal.routes.admin_routes import api_router as admin_api_router
from voting_portal.routes.admin_routes import router as admin_router
from voting_portal.routes.auth_routes import router as auth_router
from voting_portal.routes.election_routes import router as election_router
from voting_portal.routes.vote_routes import vote_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app_instance: FastAPI):
    try:
        MongoConnector().ensure_indexes()
        logger.info(f"Connected to MongoDB: {MONGO_DB}")
    except PyMongoError as e:
        # Keep serving: reads fall back to the static dataset until the database returns
        logger.error(f"Failed to connect to MongoDB at startup: {e}")
    yield


app = FastAPI(title="Election Voting Portal API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(PortalError)
async def portal_error_handler(request: Request, exc: PortalError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationFailure) else None
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.message, "code": exc.code},
        headers=headers,
    )


app.include_router(auth_router)
app.include_router(election_router)
app.include_router(vote_router)
app.include_router(admin_api_router)
app.include_router(admin_router)


def classify_response_time(elapsed_ms: int) -> str:
    if elapsed_ms < HEALTH_EXCELLENT_MS:
        return "excellent"
    if elapsed_ms < HEALTH_GOOD_MS:
        return "good"
    return "slow"


@app.get("/health", tags=["Health"])
def health_check():
    started = time.monotonic()
    try:
        MongoConnector().ping()
    except PyMongoError as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={"status": "error", "database": "MongoDB", "response_time_ms": None},
        )
    elapsed_ms = int((time.monotonic() - started) * 1000)
    return {"status": classify_response_time(elapsed_ms), "database": "MongoDB", "response_time_ms": elapsed_ms}


@app.get("/", tags=["Root"])
def read_root():
    return {"message": "Welcome to the Election Voting Portal API"}


@app.get("/favicon.ico", include_in_schema=False)
async def favicon():
    return Response(status_code=204)
