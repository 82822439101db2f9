from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Union

import httpx

from .client import ApiError, DigiSignClient
from .config import Settings
from .models import ApiResult, JsonResult

logger = logging.getLogger(__name__)

# status reported when a 2xx payload is unusable after normalization
UNUSABLE_PAYLOAD_STATUS = 200


def create_http_client(settings: Settings) -> httpx.AsyncClient:
    return httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_s))


def create_client(settings: Settings, http: httpx.AsyncClient) -> DigiSignClient:
    return DigiSignClient(http=http, credentials=settings.credentials(), base_url=settings.api_base_url())


def json_value(result: ApiResult, what: str) -> Any:
    if not isinstance(result, JsonResult):
        raise ApiError(UNUSABLE_PAYLOAD_STATUS, f"Expected JSON {what}, got {result.kind} response")
    return result.value


class EnvelopeWorkflow:
    """Multi-step operations composed from single client calls."""

    def __init__(self, client: DigiSignClient):
        self.client = client

    async def upload_and_attach_document(
        self,
        envelope_id: str,
        file_path: Union[str, Path],
        document_name: Optional[str] = None,
    ) -> dict[str, Any]:
        """Upload a local file, then attach it to the envelope as a document."""
        uploaded = json_value(await self.client.upload_file(file_path), "file")
        file_id = uploaded.get("id") if isinstance(uploaded, dict) else None
        if not file_id:
            raise ApiError(UNUSABLE_PAYLOAD_STATUS, f"Upload response missing file id: {uploaded}")
        logger.info(f"Uploaded {Path(file_path).name} as file {file_id}")

        name = document_name or Path(file_path).name
        document = json_value(await self.client.add_document(envelope_id, str(file_id), name), "document")
        return {"file": uploaded, "document": document}
