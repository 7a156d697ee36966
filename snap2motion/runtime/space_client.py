"""
Hugging Face Space client

Adapts ``gradio_client.Client`` to the ``SpaceConnector`` interface used
by the degradation controller. The Gradio client is synchronous, so every
network call runs in a worker thread to keep the event loop free.
"""

import asyncio
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
from gradio_client import Client, handle_file

from ..agent.errors import TransientOverloadError
from ..agent.retry_logic import SpaceConnection, SpaceConnector, is_transient_overload

logger = logging.getLogger(__name__)


class GradioSpaceConnection(SpaceConnection):
    """One connected Space"""

    def __init__(self, client: Client, space_id: str, work_dir: Path):
        self.client = client
        self.space_id = space_id
        self.work_dir = work_dir
        self._temp_files: List[Path] = []

    async def view_api(self) -> Dict[str, Any]:
        api = await asyncio.to_thread(self.client.view_api, print_info=False, return_format="dict")
        return api if isinstance(api, dict) else {}

    def file_input(self, data: bytes, name: str) -> Any:
        """Write the blob to a temp file and wrap it for upload"""
        suffix = Path(name or "input.jpg").suffix or ".jpg"
        fd, path = tempfile.mkstemp(suffix=suffix, prefix="snap2motion_", dir=self.work_dir)
        with os.fdopen(fd, 'wb') as f:
            f.write(data)
        self._temp_files.append(Path(path))
        return handle_file(path)

    async def predict(self, payload: Dict[str, Any], endpoint: Any) -> Any:
        if isinstance(endpoint, int):
            call = lambda: self.client.predict(fn_index=endpoint, **payload)
        else:
            call = lambda: self.client.predict(api_name=endpoint, **payload)
        try:
            return await asyncio.to_thread(call)
        except Exception as e:
            if is_transient_overload(e):
                raise TransientOverloadError(str(e)) from e
            raise
        finally:
            self.cleanup()

    def cleanup(self):
        for path in self._temp_files:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
        self._temp_files = []


class GradioSpaceConnector(SpaceConnector):
    """
    Opens ``gradio_client`` connections to Spaces.

    Args:
        hf_token: Optional Hugging Face token (private Spaces, higher quota)
        timeout: HTTP timeout for uploads and predictions, in seconds
        work_dir: Where resized inputs are staged for upload
    """

    def __init__(self, hf_token: Optional[str] = None, timeout: float = 300.0,
                 work_dir: Optional[Path] = None):
        self.hf_token = hf_token
        self.timeout = timeout
        self.work_dir = Path(work_dir) if work_dir else Path(tempfile.gettempdir())

    async def connect(self, space_id: str) -> GradioSpaceConnection:
        logger.info(f"Connecting to Space {space_id}")
        client = await asyncio.to_thread(
            Client,
            space_id,
            hf_token=self.hf_token,
            httpx_kwargs={"timeout": httpx.Timeout(self.timeout, connect=60.0)},
            verbose=False,
        )
        return GradioSpaceConnection(client, space_id, self.work_dir)
