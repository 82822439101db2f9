from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .client import DigiSignClient
from .models import (
    ApiResult,
    CoordinatePlacement,
    DownloadOutput,
    EnvelopeStatus,
    PlaceholderPlacement,
    Positioning,
    RecipientRole,
    TagPlacement,
    TagType,
)
from .service import EnvelopeWorkflow


class ToolArgs(BaseModel):
    """Base for tool arguments: camelCase on the wire, unknown keys rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class NoArgs(ToolArgs):
    pass


class EnvelopeArgs(ToolArgs):
    envelope_id: str = Field(..., description="Envelope UUID")


class ListEnvelopesArgs(ToolArgs):
    status: Optional[EnvelopeStatus] = Field(None, description="Filter by status")
    page: Optional[int] = Field(None, ge=1, description="Page number (default 1)")
    items_per_page: Optional[int] = Field(None, ge=1, description="Items per page (default 10)")


class RecipientArgs(EnvelopeArgs):
    recipient_id: str = Field(..., description="Recipient UUID")


class DownloadUrlArgs(EnvelopeArgs):
    output: Optional[DownloadOutput] = Field(None, description="Output format (default: combined)")


class DownloadArgs(DownloadUrlArgs):
    include_log: bool = Field(True, description="Include the audit log in the download")


class CreateEnvelopeArgs(ToolArgs):
    name: str = Field(..., min_length=1, description='Envelope name (e.g. "SLA Contract - ClientName")')
    email_body: Optional[str] = Field(None, description="Email body sent to signers (HTML allowed)")
    email_body_completed: Optional[str] = Field(None, description="Email body sent when all parties signed")
    sender_name: Optional[str] = Field(None, description="Override sender name")
    sender_email: Optional[str] = Field(None, description="Override sender email")


class UpdateEnvelopeArgs(EnvelopeArgs):
    name: Optional[str] = Field(None, min_length=1, description="New envelope name")
    email_body: Optional[str] = Field(None, description="Email body sent to signers (HTML allowed)")
    email_body_completed: Optional[str] = Field(None, description="Email body sent when all parties signed")
    sender_name: Optional[str] = Field(None, description="Override sender name")
    sender_email: Optional[str] = Field(None, description="Override sender email")

    def updates(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True, exclude={"envelope_id"})


class UploadDocumentArgs(EnvelopeArgs):
    file_path: str = Field(..., description="Absolute path to the file to upload")
    document_name: Optional[str] = Field(None, description="Display name for the document")


class AddRecipientArgs(EnvelopeArgs):
    role: RecipientRole = Field(..., description="Recipient role")
    name: str = Field(..., description="Recipient full name")
    email: str = Field(..., description="Recipient email")
    mobile: Optional[str] = Field(None, description="Mobile phone (e.g. +420111222333)")


class AddTagArgs(RecipientArgs):
    document_id: Optional[str] = Field(
        None, description="Document UUID (required for coordinates, recommended for placeholders)"
    )
    type: Optional[TagType] = Field(None, description="Tag type (default: signature)")
    placeholder: Optional[str] = Field(None, description='Placeholder text to find in document (e.g. "{sign_here}")')
    positioning: Optional[Positioning] = Field(None, description="How the tag aligns to the placeholder")
    page: Optional[int] = Field(None, description="Page number (coordinate positioning)")
    x_position: Optional[Union[int, float]] = Field(None, description="X position in points (coordinate positioning)")
    y_position: Optional[Union[int, float]] = Field(None, description="Y position in points (coordinate positioning)")

    @model_validator(mode="after")
    def check_positioning_mode(self) -> "AddTagArgs":
        coords = {"page": self.page, "xPosition": self.x_position, "yPosition": self.y_position}
        if self.placeholder:
            given = [k for k, v in coords.items() if v is not None]
            if given:
                raise ValueError(f"placeholder cannot be combined with coordinate fields: {', '.join(given)}")
            return self
        if self.positioning is not None:
            raise ValueError("positioning requires a placeholder")
        missing = [k for k, v in {"documentId": self.document_id, **coords}.items() if v is None]
        if missing:
            raise ValueError(f"coordinate positioning requires: {', '.join(missing)}")
        return self

    def placement(self) -> TagPlacement:
        if self.placeholder:
            return PlaceholderPlacement(
                placeholder=self.placeholder,
                positioning=self.positioning,
                document_id=self.document_id,
            )
        return CoordinatePlacement(
            document_id=self.document_id,
            page=self.page,
            x_position=self.x_position,
            y_position=self.y_position,
        )


class AddTagsByPlaceholderArgs(RecipientArgs):
    placeholder: str = Field(..., min_length=1, description="Placeholder text to find in each document")
    positioning: Optional[Positioning] = Field(None, description="How the tag aligns to the placeholder")
    document_ids: Optional[list[str]] = Field(None, description="Document UUIDs to apply the tag to")
    type: Optional[TagType] = Field(None, description="Tag type (default: signature)")


Handler = Callable[[DigiSignClient, Any], Awaitable[Union[ApiResult, dict[str, Any]]]]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    args: type[ToolArgs]
    run: Handler
    read_only: bool = False

    def input_schema(self) -> dict[str, Any]:
        return self.args.model_json_schema(by_alias=True)


async def _upload_and_attach(client: DigiSignClient, a: UploadDocumentArgs) -> dict[str, Any]:
    workflow = EnvelopeWorkflow(client)
    return await workflow.upload_and_attach_document(a.envelope_id, a.file_path, a.document_name)


TOOLS: list[ToolSpec] = [
    # Read tools
    ToolSpec(
        "list_envelopes",
        "List envelopes with optional status filter. Returns envelope IDs, names, and statuses.",
        ListEnvelopesArgs,
        lambda c, a: c.list_envelopes(status=a.status, page=a.page, items_per_page=a.items_per_page),
        read_only=True,
    ),
    ToolSpec(
        "get_envelope",
        "Get detailed information about a specific envelope including status, recipients, documents.",
        EnvelopeArgs,
        lambda c, a: c.get_envelope(a.envelope_id),
        read_only=True,
    ),
    ToolSpec(
        "list_documents",
        "List documents attached to an envelope.",
        EnvelopeArgs,
        lambda c, a: c.list_documents(a.envelope_id),
        read_only=True,
    ),
    ToolSpec(
        "list_recipients",
        "List recipients of an envelope with their signing status.",
        EnvelopeArgs,
        lambda c, a: c.list_recipients(a.envelope_id),
        read_only=True,
    ),
    ToolSpec(
        "get_recipient",
        "Get a single recipient of an envelope.",
        RecipientArgs,
        lambda c, a: c.get_recipient(a.envelope_id, a.recipient_id),
        read_only=True,
    ),
    ToolSpec(
        "list_tags",
        "List signature/form tags on an envelope.",
        EnvelopeArgs,
        lambda c, a: c.list_tags(a.envelope_id),
        read_only=True,
    ),
    ToolSpec(
        "get_download_url",
        "Get a temporary download URL (valid about 5 minutes) for signed documents of a completed envelope.",
        DownloadUrlArgs,
        lambda c, a: c.get_download_url(a.envelope_id, output=a.output),
        read_only=True,
    ),
    ToolSpec(
        "download_envelope",
        "Download the signed documents of an envelope as a PDF or ZIP resource.",
        DownloadArgs,
        lambda c, a: c.download_envelope(a.envelope_id, output=a.output, include_log=a.include_log),
        read_only=True,
    ),
    ToolSpec(
        "get_account",
        "Get DigiSign account info: credits, plan, usage.",
        NoArgs,
        lambda c, a: c.get_account(),
        read_only=True,
    ),
    # Write tools
    ToolSpec(
        "create_envelope",
        "Create a new draft envelope for digital signature. Returns envelope ID for subsequent operations.",
        CreateEnvelopeArgs,
        lambda c, a: c.create_envelope(
            a.name,
            email_body=a.email_body,
            email_body_completed=a.email_body_completed,
            sender_name=a.sender_name,
            sender_email=a.sender_email,
        ),
    ),
    ToolSpec(
        "update_envelope",
        "Update fields of a draft envelope. Only the supplied fields are changed.",
        UpdateEnvelopeArgs,
        lambda c, a: c.update_envelope(a.envelope_id, a.updates()),
    ),
    ToolSpec(
        "upload_and_attach_document",
        "Upload a local file (PDF/DOCX) and attach it to an envelope.",
        UploadDocumentArgs,
        _upload_and_attach,
    ),
    ToolSpec(
        "add_recipient",
        "Add a signer, approver, or CC recipient to an envelope.",
        AddRecipientArgs,
        lambda c, a: c.add_recipient(a.envelope_id, a.role, a.name, a.email, mobile=a.mobile),
    ),
    ToolSpec(
        "add_signature_tag",
        "Place a signature or form tag on a document. Use placeholder for text-based positioning "
        "or documentId + page + xPosition + yPosition for exact placement.",
        AddTagArgs,
        lambda c, a: c.add_tag(a.envelope_id, a.recipient_id, a.placement(), tag_type=a.type),
    ),
    ToolSpec(
        "add_tags_by_placeholder",
        "Place the same placeholder-anchored tag on several documents of an envelope in one call.",
        AddTagsByPlaceholderArgs,
        lambda c, a: c.add_tag_by_placeholder(
            a.envelope_id,
            a.recipient_id,
            a.placeholder,
            positioning=a.positioning,
            document_ids=a.document_ids,
            tag_type=a.type,
        ),
    ),
    ToolSpec(
        "send_envelope",
        "Send a draft envelope for signature. Requires at least one document, one signer, and signature tags placed.",
        EnvelopeArgs,
        lambda c, a: c.send_envelope(a.envelope_id),
    ),
    ToolSpec(
        "cancel_envelope",
        "Cancel a sent envelope. Signers will be notified.",
        EnvelopeArgs,
        lambda c, a: c.cancel_envelope(a.envelope_id),
    ),
    ToolSpec(
        "delete_envelope",
        "Delete a draft envelope. Cannot delete sent/completed envelopes.",
        EnvelopeArgs,
        lambda c, a: c.delete_envelope(a.envelope_id),
    ),
]

TOOLS_BY_NAME: dict[str, ToolSpec] = {t.name: t for t in TOOLS}
