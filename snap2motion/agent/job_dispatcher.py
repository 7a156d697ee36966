"""
Job Dispatcher - Submits and polls jobs on a remote prediction queue

This module handles:
- Submitting a resolved input payload against a model version
- Polling job status on a fixed interval until a terminal state
- Pulling a single video reference out of whatever output shape the
  remote returns
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .errors import (
    JobFailedError,
    JobStateError,
    PollError,
    PolledSuccessWithoutOutputError,
    SubmissionError,
)
from .session import CancellationToken

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL = 1.5

# Remote spellings of terminal states
STATUS_ALIASES = {
    "aborted": "canceled",
    "cancelled": "canceled",
    "error": "failed",
}


class JobStatus(Enum):
    """Remote job lifecycle"""
    STARTING = "starting"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELED = "canceled"

    @classmethod
    def parse(cls, value: Any) -> 'JobStatus':
        """Map a remote status string; anything unknown is still running"""
        text = str(value).lower()
        text = STATUS_ALIASES.get(text, text)
        try:
            return cls(text)
        except ValueError:
            return cls.PROCESSING

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.CANCELED)


@dataclass
class JobSnapshot:
    """One poll result"""
    id: str
    status: JobStatus
    error: Optional[str] = None
    logs: str = ""
    output_url: Optional[str] = None
    raw_output: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "error": self.error,
            "logs": self.logs,
            "output_url": self.output_url,
            "output": self.raw_output,
        }


@dataclass
class Job:
    """A remote job as seen through polling"""
    id: str
    status: JobStatus = JobStatus.STARTING
    error_message: Optional[str] = None
    output_reference: Optional[str] = None
    logs_tail: str = ""
    created_at: float = field(default_factory=time.time)

    def apply(self, snapshot: JobSnapshot):
        """Update from a poll snapshot; terminal jobs never change again"""
        if self.status.is_terminal:
            raise JobStateError(
                f"Job {self.id} is already {self.status.value}; "
                f"refusing update to {snapshot.status.value}"
            )
        self.status = snapshot.status
        self.error_message = snapshot.error
        self.output_reference = snapshot.output_url
        self.logs_tail = snapshot.logs


class QueueTransport(ABC):
    """Network side of a prediction queue"""

    @abstractmethod
    async def create_prediction(self, version: str, input: Dict[str, Any]) -> Dict[str, Any]:
        """Create a job, returning the remote prediction record"""

    @abstractmethod
    async def get_prediction(self, prediction_id: str) -> Dict[str, Any]:
        """Fetch the current remote prediction record"""

    @abstractmethod
    async def upload_file(self, data: bytes, name: str, content_type: str) -> str:
        """Store an input file remotely, returning a URL a job can read"""


def _url_of(value: Any) -> Optional[str]:
    """``value.url`` / ``value["url"]`` as a string, calling it if callable"""
    url = value.get('url') if isinstance(value, dict) else getattr(value, 'url', None)
    if callable(url):
        url = url()
    if isinstance(url, str) and url:
        return url
    return None


def extract_output_reference(output: Any, _depth: int = 0) -> Optional[str]:
    """
    Pull one video reference out of a remote output value.

    Handles a plain string, a list whose first element is a string or
    exposes a URL, an object exposing ``url`` (string or callable), and
    Gradio-style mappings with ``video`` / ``path`` / ``data`` keys.

    Returns:
        The reference, or None when no known shape matches
    """
    if output is None or _depth > 3:
        return None

    if isinstance(output, str):
        return output or None

    if isinstance(output, (list, tuple)):
        if not output:
            return None
        return extract_output_reference(output[0], _depth + 1)

    url = _url_of(output)
    if url:
        return url

    if isinstance(output, dict):
        if output.get('video') is not None:
            return extract_output_reference(output['video'], _depth + 1)
        for key in ('path', 'data'):
            value = output.get(key)
            if isinstance(value, str) and value:
                return value

    return None


def last_log_line(logs: Any) -> str:
    if not isinstance(logs, str):
        return ""
    lines = logs.strip().split("\n")
    return lines[-1] if lines else ""


class JobDispatcher:
    """
    Drives one remote job from submission to a video reference.

    Usage:
        dispatcher = JobDispatcher(transport)
        job_id = await dispatcher.submit(payload, version)
        url = await dispatcher.wait_for_output(job_id, token)
    """

    def __init__(self, transport: QueueTransport, poll_interval: float = DEFAULT_POLL_INTERVAL):
        self.transport = transport
        self.poll_interval = poll_interval

    async def submit_record(self, payload: Dict[str, Any], service_version: str) -> Dict[str, Any]:
        """
        Submit a resolved payload.

        Returns:
            The remote prediction record (always carries an ``id``)

        Raises:
            SubmissionError: remote rejected the payload or returned no id
        """
        try:
            prediction = await self.transport.create_prediction(service_version, payload)
        except SubmissionError:
            raise
        except Exception as e:
            raise SubmissionError(str(e) or "Failed to start prediction.") from e

        job_id = prediction.get('id') if isinstance(prediction, dict) else None
        if not job_id:
            raise SubmissionError("Failed to start prediction: no job id returned.")

        logger.info(f"Submitted job {job_id} (status {prediction.get('status', 'starting')})")
        return prediction

    async def submit(self, payload: Dict[str, Any], service_version: str) -> str:
        """Submit a resolved payload and return the remote job id"""
        prediction = await self.submit_record(payload, service_version)
        return str(prediction['id'])

    async def poll(self, job_id: str) -> JobSnapshot:
        """
        Fetch one status snapshot.

        Raises:
            PollError: the status call itself failed
        """
        try:
            prediction = await self.transport.get_prediction(job_id)
        except PollError:
            raise
        except Exception as e:
            raise PollError(str(e) or "Replicate polling failed.") from e

        if not isinstance(prediction, dict):
            raise PollError("Replicate polling failed: unexpected response.")

        output = prediction.get('output')
        return JobSnapshot(
            id=str(prediction.get('id') or job_id),
            status=JobStatus.parse(prediction.get('status')),
            error=prediction.get('error') or None,
            logs=last_log_line(prediction.get('logs')),
            output_url=extract_output_reference(output),
            raw_output=output,
        )

    async def wait_for_output(
        self,
        job_id: str,
        token: Optional[CancellationToken] = None,
        on_status: Optional[Callable[[str], None]] = None,
    ) -> str:
        """
        Poll until the job is terminal and return its output reference.

        Raises:
            GenerationCancelledError: token set before the next poll
            JobFailedError: job failed or was canceled remotely
            PolledSuccessWithoutOutputError: succeeded with no output
        """
        job = Job(id=job_id)

        while True:
            if token is not None:
                token.raise_if_cancelled()

            snapshot = await self.poll(job_id)
            job.apply(snapshot)

            if job.status is JobStatus.SUCCEEDED:
                if not job.output_reference:
                    raise PolledSuccessWithoutOutputError(
                        "Replicate succeeded but no output video URL found."
                    )
                logger.info(f"Job {job_id} succeeded: {job.output_reference}")
                return job.output_reference

            if job.status in (JobStatus.FAILED, JobStatus.CANCELED):
                message = job.error_message or f"Replicate job {job.status.value}."
                logger.error(f"Job {job_id} {job.status.value}: {message}")
                raise JobFailedError(message, status=job.status.value)

            status_text = f"Replicate: {job.status.value}…"
            if job.logs_tail:
                status_text += f" {job.logs_tail}"
            if on_status:
                on_status(status_text)
            logger.debug(status_text)

            await asyncio.sleep(self.poll_interval)
