"""
Replicate HTTP client

Thin async wrapper over the Replicate endpoints the queued backend needs:
model lookup (latest version + OpenAPI schema), input file upload,
prediction creation and prediction status.

Usage:
    async with ReplicateClient(ReplicateConfig.from_dict(cfg)) as client:
        model = await client.get_model("minimax", "video-01-director")
        prediction = await client.create_prediction(version_id, {"prompt": "..."})
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import httpx

from ..agent.errors import ConfigurationError, PollError, SubmissionError
from ..agent.job_dispatcher import QueueTransport

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.replicate.com/v1"
DEFAULT_MODEL_OWNER = "minimax"
DEFAULT_MODEL_NAME = "video-01-director"


@dataclass
class ReplicateConfig:
    """Connection settings for the queued-remote backend"""
    api_token: Optional[str] = None
    api_base: str = DEFAULT_API_BASE
    model_owner: str = DEFAULT_MODEL_OWNER
    model_name: str = DEFAULT_MODEL_NAME
    poll_interval_seconds: float = 1.5
    request_timeout_seconds: float = 60.0
    upload_inputs: bool = True

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'ReplicateConfig':
        """Build from the ``queued_remote`` config section"""
        data = data or {}
        return cls(
            api_token=data.get('api_token') or None,
            api_base=data.get('api_base') or DEFAULT_API_BASE,
            model_owner=data.get('model_owner') or DEFAULT_MODEL_OWNER,
            model_name=data.get('model_name') or DEFAULT_MODEL_NAME,
            poll_interval_seconds=float(data.get('poll_interval_seconds', 1.5)),
            request_timeout_seconds=float(data.get('request_timeout_seconds', 60.0)),
            upload_inputs=bool(data.get('upload_inputs', True)),
        )

    @property
    def model_id(self) -> str:
        return f"{self.model_owner}/{self.model_name}"


def _error_detail(response: httpx.Response) -> str:
    """Best human-readable message from an error response"""
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        for key in ('detail', 'error', 'title'):
            if data.get(key):
                return str(data[key])
    return f"HTTP {response.status_code}: {response.text[:200]}"


class ReplicateClient(QueueTransport):
    """
    Async Replicate API client.

    The underlying ``httpx.AsyncClient`` is created lazily; pass
    ``transport`` to route requests through an ``httpx.MockTransport``.
    """

    def __init__(self, config: Optional[ReplicateConfig] = None,
                 transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or ReplicateConfig()
        if not self.config.api_token:
            raise ConfigurationError("Missing REPLICATE_API_TOKEN. Put it in your environment.")

        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.config.api_base.rstrip('/'),
                headers={
                    'Authorization': f'Bearer {self.config.api_token}',
                    'Cache-Control': 'no-store',
                },
                timeout=self.config.request_timeout_seconds,
                transport=self._transport,
            )
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    async def get_model(self, owner: Optional[str] = None, name: Optional[str] = None) -> Dict[str, Any]:
        """
        Fetch a model record (``latest_version.id`` / ``latest_version.openapi_schema``).

        Raises:
            SubmissionError: model lookup failed
        """
        owner = owner or self.config.model_owner
        name = name or self.config.model_name
        client = self._ensure_client()

        try:
            response = await client.get(f"/models/{owner}/{name}")
        except httpx.HTTPError as e:
            raise SubmissionError(f"Could not reach Replicate: {e}") from e

        if response.is_error:
            raise SubmissionError(f"Could not fetch model {owner}/{name}: {_error_detail(response)}")
        return response.json()

    async def create_prediction(self, version: str, input: Dict[str, Any]) -> Dict[str, Any]:
        client = self._ensure_client()
        try:
            response = await client.post("/predictions", json={"version": version, "input": input})
        except httpx.HTTPError as e:
            raise SubmissionError(f"Could not reach Replicate: {e}") from e

        if response.is_error:
            raise SubmissionError(_error_detail(response))

        prediction = response.json()
        logger.debug(f"Created prediction {prediction.get('id')}")
        return prediction

    async def get_prediction(self, prediction_id: str) -> Dict[str, Any]:
        client = self._ensure_client()
        try:
            response = await client.get(f"/predictions/{prediction_id}")
        except httpx.HTTPError as e:
            raise PollError(f"Replicate polling failed: {e}") from e

        if response.is_error:
            raise PollError(f"Replicate polling failed: {_error_detail(response)}")
        return response.json()

    async def upload_file(self, data: bytes, name: str, content_type: str = "application/octet-stream") -> str:
        """
        Upload an input through the Files API.

        Returns:
            The file's ``urls.get`` URL, usable as a prediction input

        Raises:
            SubmissionError: upload failed or returned no URL
        """
        client = self._ensure_client()
        try:
            response = await client.post("/files", files={"content": (name, data, content_type)})
        except httpx.HTTPError as e:
            raise SubmissionError(f"Could not upload {name} to Replicate: {e}") from e

        if response.is_error:
            raise SubmissionError(f"Could not upload {name}: {_error_detail(response)}")

        url = ((response.json() or {}).get('urls') or {}).get('get')
        if not url:
            raise SubmissionError(f"Upload of {name} returned no file URL")
        logger.debug(f"Uploaded {name} ({len(data)} bytes) to {url}")
        return url
