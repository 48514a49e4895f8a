import os
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.openapi.utils import get_openapi
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.api.admin.routes import admin_router
from src.api.recommendations.routes import (
    activity_recorder,
    recommendation_retriever,
    recommendations_router,
)
from src.config.settings import settings
from src.dependencies.firebase import initialize_firebase
from src.middleware.error import http_exception_handler
from src.middleware.timing import add_process_time_header
from src.shared.error_handler import ServiceError
from src.shared.utils import get_logger
from src.tasks.jobs import job_manager
from src.tasks.scheduler import RecommendationScheduler

if os.getenv("TESTING") != "True":
    initialize_firebase()

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting recommendation engine ({settings.ENVIRONMENT})")
    scheduler = None
    if settings.RECOMMENDATION_SCHEDULER_ENABLED:
        scheduler = RecommendationScheduler(
            jobs=job_manager,
            similarity_engine=recommendation_retriever.similarity_engine,
            user_score_engine=recommendation_retriever.user_score_engine,
        )
        scheduler.start()
    else:
        logger.info("Recommendation scheduler disabled")

    yield

    if scheduler is not None:
        scheduler.shutdown()
    await job_manager.shutdown()
    await activity_recorder.drain()


app = FastAPI(
    title="Recommendation Engine API",
    description="Activity tracking and product recommendations for the e-commerce platform.",
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(recommendations_router)
app.include_router(admin_router)

app.add_exception_handler(StarletteHTTPException, http_exception_handler)
app.add_exception_handler(ServiceError, http_exception_handler)
app.add_exception_handler(Exception, http_exception_handler)


def custom_openapi():
    if app.openapi_schema:
        return app.openapi_schema
    openapi_schema = get_openapi(
        title=app.title,
        version=app.version,
        description=app.description,
        routes=app.routes,
    )
    openapi_schema.setdefault("components", {})["securitySchemes"] = {
        "BearerAuth": {
            "type": "http",
            "scheme": "bearer",
            "bearerFormat": "JWT",
        }
    }
    app.openapi_schema = openapi_schema
    return app.openapi_schema


app.openapi = custom_openapi


app.middleware("http")(add_process_time_header)


@app.get("/", tags=["App"])
async def read_root():
    return {"service": "recommendation-engine", "status": "ok"}
