from unittest import mock

from src.config.constants import (
    JOB_ALL_USER_SCORES_REBUILD,
    JOB_SIMILARITY_REBUILD,
    JobStatus,
)
from src.tasks.jobs import JobManager
from src.tasks.scheduler import RecommendationScheduler


def _scheduler(jobs=None):
    similarity_engine = mock.Mock()
    similarity_engine.rebuild_similarities = mock.AsyncMock(return_value={"edges": 4})
    user_score_engine = mock.Mock()
    user_score_engine.rebuild_all_user_scores = mock.AsyncMock(return_value={"success": 2})
    return RecommendationScheduler(
        jobs=jobs or JobManager(),
        similarity_engine=similarity_engine,
        user_score_engine=user_score_engine,
    )


class TestRecommendationScheduler:
    async def test_jobs_are_registered_with_cron_triggers(self):
        scheduler = _scheduler()
        scheduler.start()
        try:
            triggers = {job.id: str(job.trigger) for job in scheduler.scheduler.get_jobs()}
        finally:
            scheduler.shutdown()

        assert "hour='2'" in triggers[JOB_SIMILARITY_REBUILD]
        assert "minute='0'" in triggers[JOB_SIMILARITY_REBUILD]
        assert "hour='*/6'" in triggers[JOB_ALL_USER_SCORES_REBUILD]

    async def test_similarity_trigger_submits_tracked_job(self):
        jobs = JobManager()
        scheduler = _scheduler(jobs)

        handle = await scheduler.run_similarity_rebuild()
        await jobs.wait(handle.id)

        assert handle.name == JOB_SIMILARITY_REBUILD
        assert handle.status == JobStatus.COMPLETED
        assert handle.result == {"edges": 4}
        rebuild = scheduler.similarity_engine.rebuild_similarities
        rebuild.assert_awaited_once_with(cancel_event=handle.cancel_event)

    async def test_user_score_trigger_submits_tracked_job(self):
        jobs = JobManager()
        scheduler = _scheduler(jobs)

        handle = await scheduler.run_user_score_rebuild()
        await jobs.wait(handle.id)

        assert handle.name == JOB_ALL_USER_SCORES_REBUILD
        assert handle.result == {"success": 2}
        assert [h.id for h in jobs.list_jobs()] == [handle.id]
