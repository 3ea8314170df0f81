import asyncio

from app.domain.errors import UpstreamUnavailable
from app.domain.services.batch_svc import run_batch

from conftest import make_activity


async def test_batch_counts_successes_and_failures(service, catalog, activity_repo, recommendation_repo):
    activity_repo.records += [
        make_activity("u1", "phone", "view"),
        make_activity("u2", "laptop", "purchase"),
        make_activity("u3", "phone", "cart"),
    ]
    real_query = catalog.query

    async def flaky_query(**kw):
        # the second user's candidate lookup hits a broken store
        if kw.get("exclude_ids") and "laptop" in kw["exclude_ids"]:
            raise UpstreamUnavailable("products down")
        return await real_query(**kw)
    catalog.query = flaky_query

    result = await run_batch(service, activity_repo, concurrency=2)
    assert (result.success, result.failed, result.total) == (2, 1, 3)
    assert result.timed_out is False
    assert {r.user_id for r in recommendation_repo.items.values()} == {"u1", "u3"}


async def test_batch_with_no_users(service, activity_repo):
    result = await run_batch(service, activity_repo)
    assert (result.success, result.failed, result.total) == (0, 0, 0)


async def test_batch_rerun_reuses_sets(service, activity_repo, recommendation_repo):
    activity_repo.records += [make_activity("u1", "phone", "view"), make_activity("u2", "phone", "purchase")]
    first = await run_batch(service, activity_repo)
    second = await run_batch(service, activity_repo)
    assert first.success == second.success == 2
    assert len(recommendation_repo.inserted) == 2


class SlowService:
    def __init__(self, slow_user):
        self.slow_user = slow_user
        self.done = []

    async def generate(self, user_id):
        if user_id == self.slow_user:
            await asyncio.sleep(10)
        self.done.append(user_id)


async def test_batch_deadline_counts_unfinished_as_failed(activity_repo):
    activity_repo.records += [make_activity(u, "phone") for u in ("a", "b", "c")]
    svc = SlowService("b")
    result = await run_batch(svc, activity_repo, concurrency=3, timeout_s=0.05)
    assert result.timed_out is True
    assert (result.success, result.failed, result.total) == (2, 1, 3)
    assert sorted(svc.done) == ["a", "c"]
