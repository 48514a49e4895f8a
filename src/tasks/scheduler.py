import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from src.api.recommendations.similarity_service import SimilarityEngine
from src.api.recommendations.user_score_service import UserScoreEngine
from src.config.constants import JOB_ALL_USER_SCORES_REBUILD, JOB_SIMILARITY_REBUILD
from src.config.settings import settings
from src.tasks.jobs import JobHandle, JobManager, job_manager


class RecommendationScheduler:
    """
    Periodic triggers for the recommendation rebuilds.

    - Similarity graph: nightly at SIMILARITY_REBUILD_HOUR:00
    - All user scores: every USER_SCORE_REBUILD_INTERVAL_HOURS hours

    Triggers only submit work to the job manager, so scheduled runs are
    tracked and cancellable like on-demand ones. Runs are not mutually
    exclusive: a slow rebuild may overlap with the next trigger.
    """

    def __init__(
        self,
        jobs: Optional[JobManager] = None,
        similarity_engine: Optional[SimilarityEngine] = None,
        user_score_engine: Optional[UserScoreEngine] = None,
    ):
        self.jobs = jobs or job_manager
        self.similarity_engine = similarity_engine or SimilarityEngine()
        self.user_score_engine = user_score_engine or UserScoreEngine(self.similarity_engine)
        self.scheduler = AsyncIOScheduler(timezone=settings.SCHEDULER_TIMEZONE)
        self.logger = logging.getLogger(__name__)
        self._register_jobs()

    def _register_jobs(self) -> None:
        self.scheduler.add_job(
            self.run_similarity_rebuild,
            CronTrigger(
                hour=settings.SIMILARITY_REBUILD_HOUR,
                minute=0,
                timezone=settings.SCHEDULER_TIMEZONE,
            ),
            id=JOB_SIMILARITY_REBUILD,
            replace_existing=True,
        )
        self.scheduler.add_job(
            self.run_user_score_rebuild,
            CronTrigger(
                hour=f"*/{settings.USER_SCORE_REBUILD_INTERVAL_HOURS}",
                minute=0,
                timezone=settings.SCHEDULER_TIMEZONE,
            ),
            id=JOB_ALL_USER_SCORES_REBUILD,
            replace_existing=True,
        )

    async def run_similarity_rebuild(self) -> JobHandle:
        self.logger.info("Scheduled similarity rebuild triggered")
        return self.jobs.submit(
            JOB_SIMILARITY_REBUILD, self.similarity_engine.rebuild_similarities
        )

    async def run_user_score_rebuild(self) -> JobHandle:
        self.logger.info("Scheduled user score rebuild triggered")
        return self.jobs.submit(
            JOB_ALL_USER_SCORES_REBUILD, self.user_score_engine.rebuild_all_user_scores
        )

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            self.logger.info(
                f"Recommendation scheduler started: similarity rebuild daily at "
                f"{settings.SIMILARITY_REBUILD_HOUR:02d}:00, user scores every "
                f"{settings.USER_SCORE_REBUILD_INTERVAL_HOURS}h ({settings.SCHEDULER_TIMEZONE})"
            )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("Recommendation scheduler stopped")
