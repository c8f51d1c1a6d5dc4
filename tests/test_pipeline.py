import time

import services
from conftest import fake_search_popen
from models import ResultList, Video
from services import CatalogClient, SearchPipeline


def outcome(*titles):
    return [Video(id=f"id-{t}", title=t) for t in titles], None


class TestSubmit:
    """Tests for starting a lookup."""

    def test_submit_sets_loading_and_clears_results(self, pipeline, executor, catalog, videos):
        pipeline.results.replace(videos)

        pipeline.submit("lofi")

        assert pipeline.loading is True
        assert len(pipeline.results) == 0
        assert pipeline.results.cursor is None
        assert len(executor.jobs) == 1
        assert catalog.queries == []  # nothing runs on the caller's thread

    def test_poll_before_completion_changes_nothing(self, pipeline):
        pipeline.submit("lofi")
        assert pipeline.poll() is None
        assert pipeline.loading is True

    def test_poll_with_nothing_submitted(self, pipeline):
        assert pipeline.poll() is None
        assert pipeline.loading is False


class TestPoll:
    """Tests for collecting a finished lookup."""

    def test_success_replaces_results(self, pipeline, executor, catalog):
        catalog.outcomes["lofi"] = outcome("a", "b")
        pipeline.submit("lofi")
        executor.run(0)

        assert pipeline.poll() is None
        assert [v.title for v in pipeline.results] == ["a", "b"]
        assert pipeline.results.cursor == 0
        assert pipeline.loading is False

    def test_empty_success_leaves_no_selection(self, pipeline, executor):
        pipeline.submit("nothing")
        executor.run(0)
        pipeline.poll()
        assert pipeline.results.cursor is None
        assert pipeline.loading is False

    def test_failure_is_returned_for_the_user(self, pipeline, executor, catalog, videos):
        catalog.outcomes["lofi"] = (None, "yt-dlp error: boom")
        pipeline.results.replace(videos)
        pipeline.submit("lofi")
        executor.run(0)

        assert pipeline.poll() == "yt-dlp error: boom"
        assert len(pipeline.results) == 0
        assert pipeline.loading is False

    def test_worker_dying_is_not_an_error(self, pipeline, executor, catalog):
        catalog.outcomes["lofi"] = RuntimeError("worker crashed")
        pipeline.submit("lofi")
        executor.run(0)

        assert pipeline.poll() is None
        assert pipeline.loading is False
        assert len(pipeline.results) == 0

    def test_outcome_is_observed_once(self, pipeline, executor, catalog):
        catalog.outcomes["lofi"] = (None, "boom")
        pipeline.submit("lofi")
        executor.run(0)
        assert pipeline.poll() == "boom"
        assert pipeline.poll() is None


class TestSupersede:
    """A newer search hides the older one's outcome."""

    def test_late_result_of_old_search_is_never_seen(self, pipeline, executor, catalog):
        catalog.outcomes["first"] = outcome("old")
        catalog.outcomes["second"] = outcome("new")
        pipeline.submit("first")
        pipeline.submit("second")

        executor.run(1)
        pipeline.poll()
        assert [v.title for v in pipeline.results] == ["new"]

        executor.run(0)
        pipeline.poll()
        assert [v.title for v in pipeline.results] == ["new"]
        assert pipeline.loading is False

    def test_old_result_finishing_first_is_ignored(self, pipeline, executor, catalog):
        catalog.outcomes["first"] = outcome("old")
        catalog.outcomes["second"] = outcome("new")
        pipeline.submit("first")
        pipeline.submit("second")

        executor.run(0)
        pipeline.poll()
        assert len(pipeline.results) == 0
        assert pipeline.loading is True

        executor.run(1)
        pipeline.poll()
        assert [v.title for v in pipeline.results] == ["new"]

    def test_superseded_search_still_runs(self, pipeline, executor, catalog):
        # Known non-property: there is no cancellation, the stale lookup still does its work.
        pipeline.submit("first")
        pipeline.submit("second")
        executor.run(0)
        executor.run(1)
        assert catalog.queries == ["first", "second"]


class TestShutdown:
    def test_shutdown_drops_pending_and_stops_executor(self, pipeline, executor, catalog):
        pipeline.submit("lofi")
        pipeline.shutdown()
        assert pipeline.loading is False
        assert executor.shut_down is True
        assert catalog.closed is True


class TestWithThreadPool:
    """Runs the real executor and catalog client against a fake yt-dlp."""

    def test_end_to_end(self, monkeypatch):
        stdout = "\n".join([
            '{"id": "aaaaaaaaaaa", "title": "Lofi Beats", "uploader": "Chill"}',
            '{"id": "broken", ',
            '{"id": "bbbbbbbbbbb", "title": "Study Mix"}',
        ])
        monkeypatch.setattr(services.subprocess, "Popen", fake_search_popen(stdout=stdout))
        pipeline = SearchPipeline(CatalogClient("yt-dlp"), ResultList(), max_workers=1)
        try:
            pipeline.submit("lofi")
            pipeline._pending.result(timeout=5)
            assert pipeline.poll() is None
        finally:
            pipeline.shutdown()

        assert [v.id for v in pipeline.results] == ["aaaaaaaaaaa", "bbbbbbbbbbb"]
        assert pipeline.results.cursor == 0
        assert pipeline.loading is False

    def test_shutdown_stops_a_slow_lookup(self, tmp_path):
        script = tmp_path / "slow-yt-dlp"
        script.write_text("#!/bin/sh\nexec sleep 6\n")
        script.chmod(0o755)
        client = CatalogClient(str(script))
        pipeline = SearchPipeline(client, ResultList(), max_workers=1)

        pipeline.submit("lofi")
        future = pipeline._pending
        deadline = time.monotonic() + 5
        while client.active_lookups == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        assert client.active_lookups == 1

        started = time.monotonic()
        pipeline.shutdown()
        videos, error = future.result(timeout=3)

        assert time.monotonic() - started < 3
        assert videos is None
        assert error == "Search cancelled."
        assert client.active_lookups == 0
