import json
import time
from pathlib import Path

import httpx
import pytest
import respx

from digisign_mcp.auth import AuthError
from digisign_mcp.client import ApiError, DigiSignClient
from digisign_mcp.models import (
    BinaryResult,
    CoordinatePlacement,
    Credentials,
    EmptyResult,
    JsonResult,
    PlaceholderPlacement,
)
from digisign_mcp.util import FilesystemError

BASE = "https://api.digisign.org"
ENV = "11111111-1111-1111-1111-111111111111"
REC = "22222222-2222-2222-2222-222222222222"
DOC = "33333333-3333-3333-3333-333333333333"


def _client(http: httpx.AsyncClient) -> DigiSignClient:
    return DigiSignClient(http=http, credentials=Credentials(access_key="ak", secret_key="sk"), base_url=BASE)


def _mock_auth(router):
    return router.post("/api/auth-token").respond(200, json={"token": "tok", "exp": int(time.time()) + 3600})


def _body(route) -> dict:
    return json.loads(route.calls.last.request.content)


@pytest.mark.asyncio
async def test_list_envelopes_without_filters_has_no_query():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        route = router.get("/api/envelopes").respond(200, json={"items": []})
        async with httpx.AsyncClient() as http:
            result = await _client(http).list_envelopes()

        req = route.calls.last.request
        assert req.url.query == b""
        assert str(req.url) == f"{BASE}/api/envelopes"
        assert req.headers["authorization"] == "Bearer tok"
        assert result == JsonResult(value={"items": []})


@pytest.mark.asyncio
async def test_list_envelopes_only_sends_present_filters():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        route = router.get("/api/envelopes").respond(200, json={"items": []})
        async with httpx.AsyncClient() as http:
            client = _client(http)
            await client.list_envelopes(status="sent")
            assert dict(route.calls.last.request.url.params) == {"status": "sent"}

            await client.list_envelopes(page=2, items_per_page=5)
            assert dict(route.calls.last.request.url.params) == {"page": "2", "itemsPerPage": "5"}


@pytest.mark.asyncio
async def test_create_envelope_omits_absent_optional_fields():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        route = router.post("/api/envelopes").respond(201, json={"id": ENV, "name": "X"})
        async with httpx.AsyncClient() as http:
            client = _client(http)
            result = await client.create_envelope("X")
            assert _body(route) == {"name": "X"}
            assert route.calls.last.request.headers["content-type"] == "application/json"
            assert result.value["id"] == ENV

            await client.create_envelope("Y", email_body="<p>Hi</p>", sender_email="me@example.com")
            assert _body(route) == {"name": "Y", "emailBody": "<p>Hi</p>", "senderEmail": "me@example.com"}


@pytest.mark.asyncio
async def test_envelope_lifecycle_paths():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        patch = router.patch(f"/api/envelopes/{ENV}").respond(200, json={"id": ENV, "name": "New"})
        send = router.post(f"/api/envelopes/{ENV}/send").respond(200, json={"status": "sent"})
        cancel = router.post(f"/api/envelopes/{ENV}/cancel").respond(200, json={"status": "cancelled"})
        delete = router.delete(f"/api/envelopes/{ENV}").respond(204)
        async with httpx.AsyncClient() as http:
            client = _client(http)
            await client.update_envelope(ENV, {"name": "New"})
            assert _body(patch) == {"name": "New"}
            assert (await client.send_envelope(ENV)).value == {"status": "sent"}
            assert (await client.cancel_envelope(ENV)).value == {"status": "cancelled"}
            assert await client.delete_envelope(ENV) == EmptyResult()
            assert send.called and cancel.called and delete.called


@pytest.mark.asyncio
async def test_placeholder_tag_body():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        route = router.post(f"/api/envelopes/{ENV}/tags").respond(201, json={"id": "tag1"})
        async with httpx.AsyncClient() as http:
            placement = PlaceholderPlacement(placeholder="{sign_here}", positioning="bottom_left", document_id=DOC)
            await _client(http).add_tag(ENV, REC, placement)

        body = _body(route)
        assert body == {
            "recipient": f"/api/envelopes/{ENV}/recipients/{REC}",
            "type": "signature",
            "placeholder": "{sign_here}",
            "positioning": "bottom_left",
            "document": f"/api/envelopes/{ENV}/documents/{DOC}",
        }
        assert "page" not in body


@pytest.mark.asyncio
async def test_placeholder_tag_without_document_or_positioning():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        route = router.post(f"/api/envelopes/{ENV}/tags").respond(201, json={"id": "tag1"})
        async with httpx.AsyncClient() as http:
            await _client(http).add_tag(ENV, REC, PlaceholderPlacement(placeholder="{x}"), tag_type="approval")

        assert _body(route) == {
            "recipient": f"/api/envelopes/{ENV}/recipients/{REC}",
            "type": "approval",
            "placeholder": "{x}",
        }


@pytest.mark.asyncio
async def test_coordinate_tag_body():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        route = router.post(f"/api/envelopes/{ENV}/tags").respond(201, json={"id": "tag2"})
        async with httpx.AsyncClient() as http:
            placement = CoordinatePlacement(document_id=DOC, page=2, x_position=100, y_position=250.5)
            await _client(http).add_tag(ENV, REC, placement, tag_type="date_of_signature")

        body = _body(route)
        assert body == {
            "recipient": f"/api/envelopes/{ENV}/recipients/{REC}",
            "type": "date_of_signature",
            "document": f"/api/envelopes/{ENV}/documents/{DOC}",
            "page": 2,
            "xPosition": 100,
            "yPosition": 250.5,
        }
        assert "placeholder" not in body
        assert "positioning" not in body


@pytest.mark.asyncio
async def test_add_tag_by_placeholder_uses_batch_endpoint():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        route = router.post(f"/api/envelopes/{ENV}/tags/by-placeholder").respond(201, json={"created": 2})
        async with httpx.AsyncClient() as http:
            await _client(http).add_tag_by_placeholder(
                ENV, REC, "{sign_here}", positioning="center", document_ids=[DOC, "doc-2"]
            )

        assert _body(route) == {
            "recipient": f"/api/envelopes/{ENV}/recipients/{REC}",
            "type": "signature",
            "placeholder": "{sign_here}",
            "positioning": "center",
            "applyToDocuments": [DOC, "doc-2"],
        }


@pytest.mark.asyncio
async def test_add_recipient_omits_mobile_when_absent():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        route = router.post(f"/api/envelopes/{ENV}/recipients").respond(201, json={"id": REC})
        async with httpx.AsyncClient() as http:
            client = _client(http)
            await client.add_recipient(ENV, "signer", "Jan Novak", "jan@example.com")
            assert _body(route) == {"role": "signer", "name": "Jan Novak", "email": "jan@example.com"}

            await client.add_recipient(ENV, "in_person", "Jan Novak", "jan@example.com", mobile="+420111222333")
            assert _body(route)["mobile"] == "+420111222333"


@pytest.mark.asyncio
async def test_pdf_response_is_binary_regardless_of_status():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        route = router.get(f"/api/envelopes/{ENV}/download").mock(
            side_effect=[
                httpx.Response(200, headers={"content-type": "application/pdf"}, content=b"%PDF-1.7"),
                httpx.Response(404, headers={"content-type": "application/pdf"}, content=b"%PDF-err"),
            ]
        )
        async with httpx.AsyncClient() as http:
            client = _client(http)
            ok = await client.download_envelope(ENV)
            params = route.calls.last.request.url.params
            assert params["output"] == "combined"
            assert params["include_log"] == "true"

            odd = await client.download_envelope(ENV, output="separate", include_log=False)
            params = route.calls.last.request.url.params
            assert params["output"] == "separate"
            assert params["include_log"] == "false"

    assert ok == BinaryResult(content_type="application/pdf", content=b"%PDF-1.7")
    assert isinstance(odd, BinaryResult)
    assert odd.content == b"%PDF-err"


@pytest.mark.asyncio
async def test_zip_response_is_binary():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        router.get(f"/api/envelopes/{ENV}/download").respond(
            200, headers={"content-type": "application/zip"}, content=b"PK\x03\x04"
        )
        async with httpx.AsyncClient() as http:
            result = await _client(http).download_envelope(ENV, output="separate")

    assert result.kind == "binary"
    assert result.content_type == "application/zip"
    assert result.content == b"PK\x03\x04"


@pytest.mark.asyncio
async def test_no_content_and_empty_success_bodies():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        router.delete(f"/api/envelopes/{ENV}").respond(204, text="not json")
        router.post(f"/api/envelopes/{ENV}/send").respond(200, content=b"")
        async with httpx.AsyncClient() as http:
            client = _client(http)
            assert await client.delete_envelope(ENV) == EmptyResult()
            assert await client.send_envelope(ENV) == EmptyResult()


@pytest.mark.asyncio
async def test_error_status_with_json_body_raises_api_error():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        router.post(f"/api/envelopes/{ENV}/send").respond(
            422, json={"detail": "Envelope has no tags", "status": 422}
        )
        async with httpx.AsyncClient() as http:
            with pytest.raises(ApiError) as exc_info:
                await _client(http).send_envelope(ENV)

    assert exc_info.value.status_code == 422
    assert exc_info.value.body == {"detail": "Envelope has no tags", "status": 422}
    assert "422" in str(exc_info.value)


@pytest.mark.asyncio
async def test_error_status_with_text_body_keeps_raw_text():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        router.get("/api/account").respond(502, text="Bad gateway")
        async with httpx.AsyncClient() as http:
            with pytest.raises(ApiError) as exc_info:
                await _client(http).get_account()

    assert exc_info.value.status_code == 502
    assert exc_info.value.body == "Bad gateway"


@pytest.mark.asyncio
async def test_token_is_fetched_once_for_many_calls():
    with respx.mock(base_url=BASE) as router:
        auth = _mock_auth(router)
        router.get("/api/account").respond(200, json={"credits": 10})
        router.get(f"/api/envelopes/{ENV}/tags").respond(200, json={"items": []})
        async with httpx.AsyncClient() as http:
            client = _client(http)
            await client.get_account()
            await client.list_tags(ENV)
            await client.get_account()

        assert auth.call_count == 1


@pytest.mark.asyncio
async def test_auth_failure_stops_before_api_call():
    with respx.mock(base_url=BASE, assert_all_called=False) as router:
        router.post("/api/auth-token").respond(401, text="bad key")
        api = router.get("/api/account").respond(200, json={})
        async with httpx.AsyncClient() as http:
            with pytest.raises(AuthError):
                await _client(http).get_account()

        assert not api.called


@pytest.mark.asyncio
async def test_upload_file_sends_multipart(tmp_path: Path):
    pdf = tmp_path / "contract.pdf"
    pdf.write_bytes(b"%PDF-1.4 contract")
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        route = router.post("/api/files").respond(201, json={"id": "file-1"})
        async with httpx.AsyncClient() as http:
            result = await _client(http).upload_file(pdf)

            req = route.calls.last.request
            content = await req.aread()

    assert result == JsonResult(value={"id": "file-1"})
    assert req.headers["content-type"].startswith("multipart/form-data; boundary=")
    assert req.headers["authorization"] == "Bearer tok"
    assert b'name="file"' in content
    assert b'filename="contract.pdf"' in content
    assert b"%PDF-1.4 contract" in content


@pytest.mark.asyncio
async def test_upload_missing_file_is_filesystem_error(tmp_path: Path):
    with respx.mock(base_url=BASE, assert_all_called=False) as router:
        auth = _mock_auth(router)
        async with httpx.AsyncClient() as http:
            with pytest.raises(FilesystemError) as exc_info:
                await _client(http).upload_file(tmp_path / "missing.pdf")

        assert not auth.called
    assert not isinstance(exc_info.value, ApiError)
    assert "missing.pdf" in str(exc_info.value)


@pytest.mark.asyncio
async def test_add_document_references_uploaded_file():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        route = router.post(f"/api/envelopes/{ENV}/documents").respond(201, json={"id": DOC})
        async with httpx.AsyncClient() as http:
            await _client(http).add_document(ENV, "file-1", "Contract")

        assert _body(route) == {"file": "/api/files/file-1", "name": "Contract"}


@pytest.mark.asyncio
async def test_get_download_url_defaults_to_combined():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        route = router.get(f"/api/envelopes/{ENV}/download-url").respond(
            200, json={"url": "https://files.example/abc", "expiresIn": 300}
        )
        async with httpx.AsyncClient() as http:
            client = _client(http)
            await client.get_download_url(ENV)
            assert dict(route.calls.last.request.url.params) == {"output": "combined"}
            await client.get_download_url(ENV, output="only_log")
            assert dict(route.calls.last.request.url.params) == {"output": "only_log"}


@pytest.mark.asyncio
async def test_read_operations_are_repeatable():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        routes = [
            router.get("/api/envelopes").respond(200, json={"items": [{"id": ENV}]}),
            router.get(f"/api/envelopes/{ENV}").respond(200, json={"id": ENV, "status": "draft"}),
            router.get(f"/api/envelopes/{ENV}/documents").respond(200, json={"items": []}),
            router.get(f"/api/envelopes/{ENV}/recipients").respond(200, json={"items": []}),
            router.get(f"/api/envelopes/{ENV}/recipients/{REC}").respond(200, json={"id": REC}),
            router.get(f"/api/envelopes/{ENV}/tags").respond(200, json={"items": []}),
            router.get("/api/account").respond(200, json={"credits": 5}),
        ]
        async with httpx.AsyncClient() as http:
            client = _client(http)
            calls = [
                client.list_envelopes,
                lambda: client.get_envelope(ENV),
                lambda: client.list_documents(ENV),
                lambda: client.list_recipients(ENV),
                lambda: client.get_recipient(ENV, REC),
                lambda: client.list_tags(ENV),
                client.get_account,
            ]
            for call in calls:
                assert await call() == await call()

        for route in routes:
            assert route.call_count == 2
            assert all(c.request.method == "GET" for c in route.calls)


@pytest.mark.asyncio
async def test_success_status_with_non_json_body_raises_api_error():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        router.get(f"/api/envelopes/{ENV}").respond(200, text="<html>")
        async with httpx.AsyncClient() as http:
            with pytest.raises(ApiError) as exc_info:
                await _client(http).get_envelope(ENV)

    assert exc_info.value.status_code == 200
    assert exc_info.value.body == "<html>"


@pytest.mark.asyncio
async def test_multipart_request_sends_form_fields():
    with respx.mock(base_url=BASE) as router:
        _mock_auth(router)
        route = router.post("/api/files").respond(201, json={"id": "file-2"})
        async with httpx.AsyncClient() as http:
            await _client(http).execute(
                "POST", "/api/files", body={"label": "annex"}, files={"file": ("a.pdf", b"%PDF")}
            )
            content = await route.calls.last.request.aread()

    assert b'name="label"' in content
    assert b"annex" in content
    assert b'filename="a.pdf"' in content


@pytest.mark.asyncio
async def test_multipart_request_rejects_non_dict_body():
    with respx.mock(base_url=BASE, assert_all_called=False) as router:
        auth = _mock_auth(router)
        async with httpx.AsyncClient() as http:
            with pytest.raises(TypeError):
                await _client(http).execute("POST", "/api/files", body=["x"], files={"file": ("a.pdf", b"%PDF")})

        assert not auth.called
