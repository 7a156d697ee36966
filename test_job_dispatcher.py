"""
Job Dispatcher — Unit Tests
===========================
Submission, polling, terminal-state handling and output extraction against
an in-memory queue transport.

Run:
    python -m pytest test_job_dispatcher.py -v --tb=short
"""

import sys
import os
import asyncio
import logging

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

import pytest

logging.basicConfig(level=logging.INFO, format="%(asctime)s  %(levelname)s  %(message)s")

from snap2motion.agent.errors import (
    GenerationCancelledError,
    JobFailedError,
    JobStateError,
    PollError,
    PolledSuccessWithoutOutputError,
    SubmissionError,
)
from snap2motion.agent.job_dispatcher import (
    Job,
    JobDispatcher,
    JobSnapshot,
    JobStatus,
    QueueTransport,
    extract_output_reference,
    last_log_line,
)
from snap2motion.agent.session import CancellationToken


class FakeTransport(QueueTransport):
    """Replays a scripted list of prediction records"""

    def __init__(self, records=None, created=None, create_error=None, poll_error=None):
        self.records = list(records or [])
        self.created = created if created is not None else {"id": "job-1", "status": "starting"}
        self.create_error = create_error
        self.poll_error = poll_error
        self.submitted = []
        self.polls = 0

    async def create_prediction(self, version, input):
        self.submitted.append((version, input))
        if self.create_error:
            raise self.create_error
        return self.created

    async def get_prediction(self, prediction_id):
        self.polls += 1
        if self.poll_error:
            raise self.poll_error
        if len(self.records) > 1:
            return self.records.pop(0)
        return self.records[0]

    async def upload_file(self, data, name, content_type):
        return f"https://files.example/{name}"


class FileOutput:
    """Object exposing a callable ``url``, like gradio/replicate file outputs"""

    def __init__(self, url):
        self._url = url

    def url(self):
        return self._url


# ---------------------------------------------------------------------------
# 1. Status and job model
# ---------------------------------------------------------------------------

class TestJobModel:

    def test_status_parse(self):
        assert JobStatus.parse("succeeded") is JobStatus.SUCCEEDED
        assert JobStatus.parse("CANCELED") is JobStatus.CANCELED
        assert JobStatus.parse("queued") is JobStatus.PROCESSING
        assert JobStatus.parse(None) is JobStatus.PROCESSING

    def test_status_aliases(self):
        assert JobStatus.parse("aborted") is JobStatus.CANCELED
        assert JobStatus.parse("Cancelled") is JobStatus.CANCELED
        assert JobStatus.parse("error") is JobStatus.FAILED
        assert JobStatus.parse("aborted").is_terminal

    def test_terminal_states(self):
        assert JobStatus.FAILED.is_terminal
        assert not JobStatus.STARTING.is_terminal

    def test_apply_updates_fields(self):
        job = Job(id="a")
        job.apply(JobSnapshot("a", JobStatus.PROCESSING, logs="step 3/10"))
        assert job.status is JobStatus.PROCESSING
        assert job.logs_tail == "step 3/10"

    def test_terminal_job_is_frozen(self):
        job = Job(id="a")
        job.apply(JobSnapshot("a", JobStatus.SUCCEEDED, output_url="https://x/v.mp4"))
        with pytest.raises(JobStateError):
            job.apply(JobSnapshot("a", JobStatus.PROCESSING))
        assert job.status is JobStatus.SUCCEEDED
        assert job.output_reference == "https://x/v.mp4"

    def test_snapshot_to_dict(self):
        snap = JobSnapshot("a", JobStatus.SUCCEEDED, output_url="u", raw_output=["u"])
        assert snap.to_dict() == {
            "id": "a", "status": "succeeded", "error": None,
            "logs": "", "output_url": "u", "output": ["u"],
        }


# ---------------------------------------------------------------------------
# 2. Output extraction
# ---------------------------------------------------------------------------

class TestExtractOutput:

    def test_string(self):
        assert extract_output_reference("https://x/v.mp4") == "https://x/v.mp4"

    def test_list_takes_first(self):
        assert extract_output_reference(["https://x/a.mp4", "https://x/b.mp4"]) == "https://x/a.mp4"

    def test_empty_values(self):
        assert extract_output_reference(None) is None
        assert extract_output_reference("") is None
        assert extract_output_reference([]) is None
        assert extract_output_reference({}) is None
        assert extract_output_reference(42) is None

    def test_url_attribute_callable(self):
        assert extract_output_reference(FileOutput("https://x/c.mp4")) == "https://x/c.mp4"
        assert extract_output_reference([FileOutput("https://x/d.mp4")]) == "https://x/d.mp4"

    def test_url_attribute_string(self):
        class Hosted:
            url = "https://x/s.mp4"
        assert extract_output_reference(Hosted()) == "https://x/s.mp4"

    def test_url_key(self):
        assert extract_output_reference({"url": "https://x/e.mp4"}) == "https://x/e.mp4"

    def test_gradio_video_mapping(self):
        assert extract_output_reference({"video": "/tmp/out.mp4"}) == "/tmp/out.mp4"
        assert extract_output_reference({"video": {"path": "/tmp/p.mp4"}}) == "/tmp/p.mp4"
        assert extract_output_reference({"data": "data:video/mp4;base64,AA"}) == "data:video/mp4;base64,AA"

    def test_tuple_of_mapping(self):
        assert extract_output_reference(({"video": "/tmp/t.mp4"}, 123)) == "/tmp/t.mp4"

    def test_last_log_line(self):
        assert last_log_line("a\nb\nc\n") == "c"
        assert last_log_line(None) == ""
        assert last_log_line("") == ""


# ---------------------------------------------------------------------------
# 3. Submission
# ---------------------------------------------------------------------------

class TestSubmit:

    def test_submit_returns_id(self):
        transport = FakeTransport()
        dispatcher = JobDispatcher(transport, poll_interval=0)
        job_id = asyncio.run(dispatcher.submit({"prompt": "x"}, "v1"))
        assert job_id == "job-1"
        assert transport.submitted == [("v1", {"prompt": "x"})]

    def test_missing_id(self):
        dispatcher = JobDispatcher(FakeTransport(created={"status": "starting"}), poll_interval=0)
        with pytest.raises(SubmissionError, match="no job id"):
            asyncio.run(dispatcher.submit({}, "v1"))

    def test_transport_error_wrapped(self):
        dispatcher = JobDispatcher(FakeTransport(create_error=RuntimeError("HTTP 422")), poll_interval=0)
        with pytest.raises(SubmissionError, match="HTTP 422"):
            asyncio.run(dispatcher.submit({}, "v1"))


# ---------------------------------------------------------------------------
# 4. Polling
# ---------------------------------------------------------------------------

class TestWaitForOutput:

    def test_success_after_progress(self):
        transport = FakeTransport(records=[
            {"id": "job-1", "status": "starting"},
            {"id": "job-1", "status": "processing", "logs": "loading\n12%"},
            {"id": "job-1", "status": "succeeded", "output": ["https://x/out.mp4"]},
        ])
        statuses = []
        dispatcher = JobDispatcher(transport, poll_interval=0)
        url = asyncio.run(dispatcher.wait_for_output("job-1", on_status=statuses.append))
        assert url == "https://x/out.mp4"
        assert transport.polls == 3
        assert statuses == ["Replicate: starting…", "Replicate: processing… 12%"]

    def test_success_without_output(self):
        transport = FakeTransport(records=[{"id": "job-1", "status": "succeeded", "output": None}])
        dispatcher = JobDispatcher(transport, poll_interval=0)
        with pytest.raises(PolledSuccessWithoutOutputError):
            asyncio.run(dispatcher.wait_for_output("job-1"))

    def test_failed_uses_remote_error(self):
        transport = FakeTransport(records=[{"id": "job-1", "status": "failed", "error": "CUDA OOM"}])
        dispatcher = JobDispatcher(transport, poll_interval=0)
        with pytest.raises(JobFailedError) as exc_info:
            asyncio.run(dispatcher.wait_for_output("job-1"))
        assert str(exc_info.value) == "CUDA OOM"
        assert exc_info.value.status == "failed"

    def test_canceled_without_error(self):
        transport = FakeTransport(records=[{"id": "job-1", "status": "canceled"}])
        dispatcher = JobDispatcher(transport, poll_interval=0)
        with pytest.raises(JobFailedError, match="Replicate job canceled."):
            asyncio.run(dispatcher.wait_for_output("job-1"))

    def test_aborted_ends_polling(self):
        transport = FakeTransport(records=[
            {"id": "job-1", "status": "processing"},
            {"id": "job-1", "status": "aborted"},
            {"id": "job-1", "status": "processing"},
        ])
        dispatcher = JobDispatcher(transport, poll_interval=0)
        with pytest.raises(JobFailedError, match="Replicate job canceled."):
            asyncio.run(dispatcher.wait_for_output("job-1"))
        assert transport.polls == 2

    def test_poll_error(self):
        transport = FakeTransport(poll_error=ConnectionError("reset"))
        dispatcher = JobDispatcher(transport, poll_interval=0)
        with pytest.raises(PollError, match="reset"):
            asyncio.run(dispatcher.wait_for_output("job-1"))

    def test_cancel_before_first_poll(self):
        transport = FakeTransport(records=[{"id": "job-1", "status": "processing"}])
        token = CancellationToken()
        token.cancel()
        dispatcher = JobDispatcher(transport, poll_interval=0)
        with pytest.raises(GenerationCancelledError):
            asyncio.run(dispatcher.wait_for_output("job-1", token))
        assert transport.polls == 0

    def test_cancel_between_polls(self):
        transport = FakeTransport(records=[{"id": "job-1", "status": "processing"}])
        token = CancellationToken()
        dispatcher = JobDispatcher(transport, poll_interval=0)
        with pytest.raises(GenerationCancelledError):
            asyncio.run(dispatcher.wait_for_output("job-1", token, on_status=lambda _: token.cancel()))
        assert transport.polls == 1


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v", "--tb=short"]))
