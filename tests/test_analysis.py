import uuid

import pytest
import requests

from alchemist.errors import ExternalServiceError, NotFoundError, ValidationError
from alchemist.services.analysis import record_analysis_result, start_analysis
from alchemist.services.realtime import ChangeFeed, RealtimeStatusWatcher
from tests.conftest import FakeHttp, FakeHttpResponse

HOOK = "https://hook.example.test/analysis"


@pytest.fixture
def resume(fake_supabase):
    row = {"id": str(uuid.uuid4()), "user_id": "u-1", "file_path": "abc.pdf", "file_name": "cv.pdf"}
    fake_supabase.rows("resumes").append(row)
    return row


def test_start_analysis_records_and_calls_webhook(fake_supabase, resume):
    http = FakeHttp()
    analysis_id = start_analysis(fake_supabase, resume["id"], "https://jobs.example.test/42", HOOK, http=http)

    analysis = fake_supabase.rows("resume_analyses")[0]
    assert analysis["id"] == analysis_id
    assert analysis["status"] == "pending"
    assert analysis["job_id"] == fake_supabase.rows("jobs")[0]["id"]

    url, payload, _ = http.posts[0]
    assert url == HOOK
    assert payload == {
        "analysisId": analysis_id,
        "resumeUrl": "https://storage.example.test/resumes/abc.pdf",
        "jobUrl": "https://jobs.example.test/42",
        "fileName": "cv.pdf",
    }


@pytest.mark.parametrize("resume_id, job_url", [("", "https://x"), ("not-a-uuid", "https://x")])
def test_start_analysis_rejects_bad_input_without_side_effects(fake_supabase, resume_id, job_url):
    http = FakeHttp()
    with pytest.raises(ValidationError):
        start_analysis(fake_supabase, resume_id, job_url, HOOK, http=http)
    assert fake_supabase.calls == []
    assert http.posts == []


def test_start_analysis_missing_job_url(fake_supabase, resume):
    with pytest.raises(ValidationError):
        start_analysis(fake_supabase, resume["id"], "  ", HOOK, http=FakeHttp())


def test_start_analysis_unknown_resume(fake_supabase):
    with pytest.raises(NotFoundError):
        start_analysis(fake_supabase, str(uuid.uuid4()), "https://x", HOOK, http=FakeHttp())


def test_webhook_rejection_is_external_error(fake_supabase, resume):
    http = FakeHttp(FakeHttpResponse(500, text="scenario off"))
    with pytest.raises(ExternalServiceError):
        start_analysis(fake_supabase, resume["id"], "https://x", HOOK, http=http)


def test_webhook_network_failure_is_external_error(fake_supabase, resume):
    class Down:
        def post(self, *a, **kw):
            raise requests.ConnectionError("dns")

    with pytest.raises(ExternalServiceError) as exc:
        start_analysis(fake_supabase, resume["id"], "https://x", HOOK, http=Down())
    assert isinstance(exc.value.cause, requests.ConnectionError)


def test_write_back_updates_row_and_wakes_watcher(fake_supabase):
    analysis_id = str(uuid.uuid4())
    fake_supabase.rows("resume_analyses").append({"id": analysis_id, "status": "pending"})
    feed = ChangeFeed()
    got = []
    with RealtimeStatusWatcher(feed, analysis_id, got.append):
        row = record_analysis_result(fake_supabase, feed, analysis_id, {
            "google_doc_url": "https://docs.example.test/d/1",
            "analysis_data": {"score": 72},
            "user_id": "someone-else",
        })

    assert row["status"] == "processed"
    assert "user_id" not in row
    assert got == ["https://docs.example.test/d/1"]


def test_write_back_error_marks_failed(fake_supabase):
    analysis_id = str(uuid.uuid4())
    fake_supabase.rows("resume_analyses").append({"id": analysis_id, "status": "pending"})
    row = record_analysis_result(fake_supabase, ChangeFeed(), analysis_id, {"error": "Job page unreachable"})
    assert row["status"] == "failed"


def test_write_back_unknown_row(fake_supabase):
    with pytest.raises(NotFoundError):
        record_analysis_result(fake_supabase, ChangeFeed(), str(uuid.uuid4()), {"status": "processed"})


def test_write_back_needs_fields(fake_supabase):
    with pytest.raises(ValidationError):
        record_analysis_result(fake_supabase, ChangeFeed(), str(uuid.uuid4()), {"foo": 1})
