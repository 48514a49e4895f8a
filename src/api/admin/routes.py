from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, status

from src.api.admin.service import RecommendationAdminService
from src.api.auth.models import DecodedToken
from src.api.recommendations.routes import recommendation_retriever
from src.config.constants import (
    JOB_ALL_USER_SCORES_REBUILD,
    JOB_SIMILARITY_REBUILD,
    JOB_USER_SCORE_REBUILD,
    UserRole,
)
from src.dependencies.auth import RoleChecker
from src.shared.exceptions import BadRequestException, ResourceNotFoundException
from src.shared.responses import success_response
from src.tasks.jobs import job_manager

admin_router = APIRouter(
    prefix="/admin/recommendations", tags=["Admin - Recommendations"]
)
similarity_engine = recommendation_retriever.similarity_engine
user_score_engine = recommendation_retriever.user_score_engine
admin_service = RecommendationAdminService(similarity_engine, user_score_engine)

AdminUser = Annotated[DecodedToken, Depends(RoleChecker([UserRole.ADMIN]))]


@admin_router.post(
    "/similarities/rebuild",
    summary="Rebuild the product similarity graph",
    status_code=status.HTTP_202_ACCEPTED,
)
async def rebuild_similarities(_: AdminUser):
    """Starts a background rebuild and returns its job handle."""
    handle = job_manager.submit(
        JOB_SIMILARITY_REBUILD, similarity_engine.rebuild_similarities
    )
    return success_response(
        handle.to_dict(),
        message="Similarity rebuild started",
        status_code=status.HTTP_202_ACCEPTED,
    )


@admin_router.post(
    "/user-scores/rebuild",
    summary="Rebuild user product scores",
    status_code=status.HTTP_202_ACCEPTED,
)
async def rebuild_user_scores(
    _: AdminUser,
    user_id: Optional[str] = Query(
        None, description="Firebase UID; rebuilds every user when omitted"
    ),
):
    if user_id is not None:
        if not user_id.strip():
            raise BadRequestException("user_id must not be blank")
        handle = job_manager.submit(
            JOB_USER_SCORE_REBUILD,
            user_score_engine.rebuild_user_scores,
            user_id.strip(),
            accepts_cancel=False,
        )
    else:
        handle = job_manager.submit(
            JOB_ALL_USER_SCORES_REBUILD, user_score_engine.rebuild_all_user_scores
        )

    return success_response(
        handle.to_dict(),
        message="User score rebuild started",
        status_code=status.HTTP_202_ACCEPTED,
    )


@admin_router.get("/jobs", summary="List recommendation jobs")
async def list_jobs(_: AdminUser):
    return success_response([handle.to_dict() for handle in job_manager.list_jobs()])


@admin_router.get("/jobs/{job_id}", summary="Get a recommendation job")
async def get_job(job_id: str, _: AdminUser):
    handle = job_manager.get(job_id)
    if handle is None:
        raise ResourceNotFoundException(f"Job with ID {job_id} not found")
    return success_response(handle.to_dict())


@admin_router.delete("/jobs/{job_id}", summary="Cancel a recommendation job")
async def cancel_job(job_id: str, _: AdminUser):
    """
    Cancellation is cooperative: the rebuild stops before its next product
    or user and keeps what it already wrote.
    """
    handle = job_manager.cancel(job_id)
    if handle is None:
        raise ResourceNotFoundException(f"Job with ID {job_id} not found")
    return success_response(handle.to_dict(), message="Cancellation requested")


@admin_router.delete("/similarities", summary="Delete all product similarities")
async def clear_similarities(_: AdminUser):
    deleted = await admin_service.clear_similarities()
    return success_response({"deleted": deleted}, message="Product similarities cleared")


@admin_router.delete("/user-scores", summary="Delete all user product scores")
async def clear_user_scores(_: AdminUser):
    deleted = await admin_service.clear_user_scores()
    return success_response({"deleted": deleted}, message="User scores cleared")


@admin_router.delete("", summary="Delete all recommendation data")
async def clear_all_recommendation_data(_: AdminUser):
    """Removes activities, similarities and user scores."""
    cleared = await admin_service.clear_all_recommendation_data()
    return success_response(cleared, message="All recommendation data cleared")


@admin_router.get("/stats", summary="Get recommendation data statistics")
async def get_stats(_: AdminUser):
    return success_response(await admin_service.get_stats())
