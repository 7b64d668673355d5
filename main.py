import logging
import os
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

import config
import database
from auth_routes import router as auth_router
from course_routes import router as course_router
from educator_routes import router as educator_router
from enrollment_routes import router as enrollment_router
from llm_routes import router as llm_router
from otp_routes import router as otp_router
from payment_routes import router as payment_router
from ssr_routes import router as ssr_router
from student_routes import router as student_router

logging.basicConfig(
    level=config.LOG_LEVEL,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    try:
        database.ensure_indexes()
    except Exception as e:
        logger.error("Could not create database indexes: %s", e)
    yield


app = FastAPI(title="LMS API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

for router in (
    auth_router,
    course_router,
    enrollment_router,
    student_router,
    educator_router,
    otp_router,
    payment_router,
    llm_router,
    ssr_router,
):
    app.include_router(router)


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception):
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": "Something went wrong"})


@app.get("/")
def read_root():
    return {"message": "LMS Backend is running"}


@app.get("/test")
def database_check():
    """Report whether MongoDB is configured and reachable."""
    status = {
        "backend": "running",
        "databaseConfigured": config.DATABASE_URL is not None,
        "databaseName": None,
        "connected": False,
        "collections": [],
    }
    if database.db is None:
        return status

    status["databaseName"] = database.db.name
    try:
        status["collections"] = sorted(database.db.list_collection_names())[:10]
        status["connected"] = True
    except PyMongoError as e:
        logger.warning("Database check failed: %s", e)
        status["error"] = str(e)[:80]
    return status


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
