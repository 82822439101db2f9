from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional, Union

import httpx

from .auth import TokenCache
from .models import (
    ApiResult,
    BinaryResult,
    CoordinatePlacement,
    Credentials,
    EmptyResult,
    JsonResult,
    PlaceholderPlacement,
    TagPlacement,
)
from .util import build_upload, is_binary_content_type

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.digisign.org"


class ApiError(RuntimeError):
    """Non-2xx response, or a 2xx response whose payload cannot be used.

    In the second case ``status_code`` is the response status when known
    and 200 when the payload was rejected after normalization.
    """

    def __init__(self, status_code: int, body: Any):
        super().__init__(f"API error ({status_code}): {body}")
        self.status_code = status_code
        self.body = body


def _drop_none(**fields: Any) -> dict[str, Any]:
    return {k: v for k, v in fields.items() if v is not None}


class DigiSignClient:
    """DigiSign REST client bound to one credential pair.

    Every operation returns an ``ApiResult`` (JSON, empty or binary) or raises
    ``AuthError`` / ``ApiError``. Nothing is retried.
    """

    def __init__(
        self,
        http: httpx.AsyncClient,
        credentials: Credentials,
        base_url: str = DEFAULT_BASE_URL,
        tokens: Optional[TokenCache] = None,
    ):
        self._http = http
        self._base_url = base_url.rstrip("/")
        self.tokens = tokens or TokenCache(credentials, self._base_url)

    def _envelope_ref(self, envelope_id: str) -> str:
        return f"/api/envelopes/{envelope_id}"

    def _recipient_ref(self, envelope_id: str, recipient_id: str) -> str:
        return f"{self._envelope_ref(envelope_id)}/recipients/{recipient_id}"

    def _document_ref(self, envelope_id: str, document_id: str) -> str:
        return f"{self._envelope_ref(envelope_id)}/documents/{document_id}"

    async def execute(
        self,
        method: str,
        path: str,
        body: Any = None,
        files: Optional[dict[str, Any]] = None,
        params: Optional[dict[str, str]] = None,
    ) -> ApiResult:
        """Send one authenticated request and normalize the response."""
        if files is not None and body is not None and not isinstance(body, dict):
            raise TypeError("multipart requests take form fields as a dict")

        token = await self.tokens.get_token(self._http)
        headers = {"Authorization": f"Bearer {token}"}
        if files is None:
            headers["Content-Type"] = "application/json"

        resp = await self._http.request(
            method,
            f"{self._base_url}{path}",
            headers=headers,
            params=params or None,
            json=body if files is None and body is not None else None,
            data=body if files is not None else None,
            files=files,
        )
        logger.info(f"{method} {path} -> {resp.status_code}")
        return self._normalize(resp)

    def _normalize(self, resp: httpx.Response) -> ApiResult:
        content_type = resp.headers.get("content-type", "")
        if is_binary_content_type(content_type):
            return BinaryResult(content_type=content_type, content=resp.content)

        if resp.status_code == 204:
            return EmptyResult()

        try:
            data = resp.json()
        except ValueError:
            if resp.is_success and not resp.content.strip():
                return EmptyResult()
            raise ApiError(resp.status_code, resp.text) from None

        if not resp.is_success:
            raise ApiError(resp.status_code, data)
        return JsonResult(value=data)

    # Envelopes

    async def list_envelopes(
        self,
        status: Optional[str] = None,
        page: Optional[int] = None,
        items_per_page: Optional[int] = None,
    ) -> ApiResult:
        params = {k: str(v) for k, v in _drop_none(status=status, page=page, itemsPerPage=items_per_page).items()}
        return await self.execute("GET", "/api/envelopes", params=params)

    async def get_envelope(self, envelope_id: str) -> ApiResult:
        return await self.execute("GET", self._envelope_ref(envelope_id))

    async def create_envelope(
        self,
        name: str,
        email_body: Optional[str] = None,
        email_body_completed: Optional[str] = None,
        sender_name: Optional[str] = None,
        sender_email: Optional[str] = None,
    ) -> ApiResult:
        body = _drop_none(
            name=name,
            emailBody=email_body,
            emailBodyCompleted=email_body_completed,
            senderName=sender_name,
            senderEmail=sender_email,
        )
        return await self.execute("POST", "/api/envelopes", body=body)

    async def update_envelope(self, envelope_id: str, updates: dict[str, Any]) -> ApiResult:
        return await self.execute("PATCH", self._envelope_ref(envelope_id), body=updates)

    async def delete_envelope(self, envelope_id: str) -> ApiResult:
        return await self.execute("DELETE", self._envelope_ref(envelope_id))

    async def send_envelope(self, envelope_id: str) -> ApiResult:
        return await self.execute("POST", f"{self._envelope_ref(envelope_id)}/send")

    async def cancel_envelope(self, envelope_id: str) -> ApiResult:
        return await self.execute("POST", f"{self._envelope_ref(envelope_id)}/cancel")

    # Documents

    async def upload_file(self, file_path: Union[str, Path]) -> ApiResult:
        # FilesystemError propagates before any token or network call
        files = build_upload(file_path)
        return await self.execute("POST", "/api/files", files=files)

    async def add_document(self, envelope_id: str, file_id: str, name: str) -> ApiResult:
        body = {"file": f"/api/files/{file_id}", "name": name}
        return await self.execute("POST", f"{self._envelope_ref(envelope_id)}/documents", body=body)

    async def list_documents(self, envelope_id: str) -> ApiResult:
        return await self.execute("GET", f"{self._envelope_ref(envelope_id)}/documents")

    async def get_download_url(self, envelope_id: str, output: Optional[str] = None) -> ApiResult:
        """Return a short-lived download URL; its expiry is not tracked here."""
        params = {"output": output or "combined"}
        return await self.execute("GET", f"{self._envelope_ref(envelope_id)}/download-url", params=params)

    async def download_envelope(
        self,
        envelope_id: str,
        output: Optional[str] = None,
        include_log: bool = True,
    ) -> ApiResult:
        params = {"output": output or "combined", "include_log": "true" if include_log else "false"}
        return await self.execute("GET", f"{self._envelope_ref(envelope_id)}/download", params=params)

    # Recipients

    async def add_recipient(
        self,
        envelope_id: str,
        role: str,
        name: str,
        email: str,
        mobile: Optional[str] = None,
    ) -> ApiResult:
        body = _drop_none(role=role, name=name, email=email, mobile=mobile)
        return await self.execute("POST", f"{self._envelope_ref(envelope_id)}/recipients", body=body)

    async def list_recipients(self, envelope_id: str) -> ApiResult:
        return await self.execute("GET", f"{self._envelope_ref(envelope_id)}/recipients")

    async def get_recipient(self, envelope_id: str, recipient_id: str) -> ApiResult:
        return await self.execute("GET", self._recipient_ref(envelope_id, recipient_id))

    # Tags

    def build_tag_body(
        self,
        envelope_id: str,
        recipient_id: str,
        placement: TagPlacement,
        tag_type: Optional[str] = None,
    ) -> dict[str, Any]:
        body: dict[str, Any] = {
            "recipient": self._recipient_ref(envelope_id, recipient_id),
            "type": tag_type or "signature",
        }
        if isinstance(placement, PlaceholderPlacement):
            body["placeholder"] = placement.placeholder
            if placement.positioning:
                body["positioning"] = placement.positioning
            if placement.document_id:
                body["document"] = self._document_ref(envelope_id, placement.document_id)
        elif isinstance(placement, CoordinatePlacement):
            body["document"] = self._document_ref(envelope_id, placement.document_id)
            body["page"] = placement.page
            body["xPosition"] = placement.x_position
            body["yPosition"] = placement.y_position
        else:
            raise TypeError(f"Unsupported tag placement: {placement!r}")
        return body

    async def add_tag(
        self,
        envelope_id: str,
        recipient_id: str,
        placement: TagPlacement,
        tag_type: Optional[str] = None,
    ) -> ApiResult:
        body = self.build_tag_body(envelope_id, recipient_id, placement, tag_type)
        return await self.execute("POST", f"{self._envelope_ref(envelope_id)}/tags", body=body)

    async def add_tag_by_placeholder(
        self,
        envelope_id: str,
        recipient_id: str,
        placeholder: str,
        positioning: Optional[str] = None,
        document_ids: Optional[list[str]] = None,
        tag_type: Optional[str] = None,
    ) -> ApiResult:
        """Apply one placeholder tag definition across several documents."""
        body: dict[str, Any] = {
            "recipient": self._recipient_ref(envelope_id, recipient_id),
            "type": tag_type or "signature",
            "placeholder": placeholder,
        }
        if positioning:
            body["positioning"] = positioning
        if document_ids:
            body["applyToDocuments"] = list(document_ids)
        return await self.execute("POST", f"{self._envelope_ref(envelope_id)}/tags/by-placeholder", body=body)

    async def list_tags(self, envelope_id: str) -> ApiResult:
        return await self.execute("GET", f"{self._envelope_ref(envelope_id)}/tags")

    # Account

    async def get_account(self) -> ApiResult:
        return await self.execute("GET", "/api/account")
