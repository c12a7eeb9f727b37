import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hms.config import LOG_LEVEL
from hms.db import ensure_indexes, get_database
from hms.errors import HospitalError
from hms.routers import admissions, records, wards

# Configure logging
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Ensuring MongoDB indexes...")
    ensure_indexes(get_database())
    yield


app = FastAPI(
    title="Hospital Admissions Backend",
    description="API backend for sequential record IDs, ward/bed occupancy and patient admissions.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS configuration (adjust origins as needed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HospitalError)
async def hospital_error_handler(request: Request, exc: HospitalError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


# Include routers
app.include_router(records.router)
app.include_router(wards.router)
app.include_router(admissions.router)


@app.get("/")
def read_root():
    return {"message": "Hospital admissions backend is running"}
