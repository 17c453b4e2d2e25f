from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from hubspot_importer.hubspot import client as client_module
from hubspot_importer.hubspot.client import (
    BatchTooLargeError,
    HubSpotAuthError,
    HubSpotBatchError,
    HubSpotClient,
    HubSpotError,
    HubSpotNetworkError,
    HubSpotRateLimitError,
    HubSpotValidationError,
    normalize_auth,
    redact_authorization,
)


class Recorder:
    """MockTransport handler returning queued responses and recording requests."""

    def __init__(self, *responses: httpx.Response) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.responses.pop(0)


def _client(handler, **kwargs) -> HubSpotClient:
    return HubSpotClient("pat-na1-secret-1234", transport=httpx.MockTransport(handler), **kwargs)


def _call(handler, method: str, *args, **kwargs):
    async def _go():
        async with _client(handler, **kwargs) as hubspot:
            return await getattr(hubspot, method)(*args)
    return asyncio.run(_go())


@pytest.mark.parametrize(
    "value,expected",
    [
        ("abc", "Bearer abc"),
        ("  abc  ", "Bearer abc"),
        ("Bearer abc", "Bearer abc"),
        ("bearer   abc", "Bearer abc"),
        ("", None),
        ("Bearer ", None),
        (None, None),
    ],
)
def test_normalize_auth(value, expected):
    assert normalize_auth(value) == expected


def test_redact_authorization():
    assert redact_authorization("Bearer pat-na1-secret-1234") == "Bearer ***1234"
    assert redact_authorization("Bearer abc") == "Bearer ***abc"
    assert redact_authorization(None) == "<missing>"


def test_missing_token_rejected():
    with pytest.raises(ValueError, match="HUBSPOT_PRIVATE_APP_TOKEN"):
        HubSpotClient("  ")


def test_create_one_request_shape():
    rec = Recorder(httpx.Response(201, json={"id": "501", "properties": {"name": "Acme"}}))
    result = _call(rec, "create_one", "companies", {"name": "Acme"})

    assert result == {"id": "501", "properties": {"name": "Acme"}}
    request = rec.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/crm/v3/objects/companies"
    assert request.headers["Authorization"] == "Bearer pat-na1-secret-1234"
    assert json.loads(request.content) == {"properties": {"name": "Acme"}}


def test_batch_create_request_shape():
    rec = Recorder(
        httpx.Response(
            201,
            json={"status": "COMPLETE", "results": [{"id": "1", "properties": {}}, {"id": "2", "properties": {}}]},
        )
    )
    result = _call(rec, "batch_create", "contacts", [{"email": "a@x.io"}, {"email": "b@x.io"}])

    assert [r["id"] for r in result["results"]] == ["1", "2"]
    assert result["errors"] == []
    request = rec.requests[0]
    assert request.url.path == "/crm/v3/objects/contacts/batch/create"
    assert json.loads(request.content) == {
        "inputs": [{"properties": {"email": "a@x.io"}}, {"properties": {"email": "b@x.io"}}]
    }


def test_batch_create_too_large_makes_no_request():
    rec = Recorder()
    with pytest.raises(BatchTooLargeError):
        _call(rec, "batch_create", "contacts", [{"email": f"{i}@x.io"} for i in range(101)])
    assert rec.requests == []


def test_batch_create_multi_status_errors_raise():
    body = {
        "status": "COMPLETE",
        "results": [{"id": "1"}],
        "errors": [{"status": "error", "message": "Property values were not valid"}],
    }
    rec = Recorder(httpx.Response(207, json=body))
    with pytest.raises(HubSpotBatchError) as exc:
        _call(rec, "batch_create", "contacts", [{"email": "a"}, {"email": "b"}])
    assert exc.value.status_code == 207
    assert exc.value.message == "Property values were not valid"


def test_unsupported_object_type():
    rec = Recorder()
    with pytest.raises(ValueError, match="Unsupported HubSpot object type"):
        _call(rec, "create_one", "tickets", {"subject": "x"})
    assert rec.requests == []


@pytest.mark.parametrize(
    "status,error_cls",
    [
        (400, HubSpotValidationError),
        (422, HubSpotValidationError),
        (401, HubSpotAuthError),
        (403, HubSpotAuthError),
        (429, HubSpotRateLimitError),
        (500, HubSpotError),
    ],
)
def test_error_taxonomy(status, error_cls):
    body = {"status": "error", "message": f"status {status}", "category": "X"}
    rec = Recorder(httpx.Response(status, json=body))
    with pytest.raises(error_cls) as exc:
        _call(rec, "create_one", "contacts", {"email": "a"})
    assert exc.value.status_code == status
    assert exc.value.body == body
    assert exc.value.message == f"status {status}"


def test_error_with_text_body():
    rec = Recorder(httpx.Response(502, text="Bad Gateway"))
    with pytest.raises(HubSpotError) as exc:
        _call(rec, "create_one", "contacts", {"email": "a"})
    assert exc.value.body == "Bad Gateway"
    assert exc.value.message == "Bad Gateway"


def test_rate_limit_retry_after_parsed():
    rec = Recorder(httpx.Response(429, headers={"Retry-After": "7"}, json={"message": "slow down"}))
    with pytest.raises(HubSpotRateLimitError) as exc:
        _call(rec, "create_one", "contacts", {"email": "a"})
    assert exc.value.retry_after == 7.0
    assert len(rec.requests) == 1


def test_rate_limit_retries_when_enabled(monkeypatch):
    waits: list[float] = []

    async def fake_sleep(seconds):
        waits.append(seconds)

    monkeypatch.setattr(client_module.asyncio, "sleep", fake_sleep)
    rec = Recorder(
        httpx.Response(429, headers={"Retry-After": "120"}, json={"message": "slow down"}),
        httpx.Response(429, json={"message": "slow down"}),
        httpx.Response(201, json={"id": "9"}),
    )
    result = _call(rec, "create_one", "contacts", {"email": "a"}, rate_limit_retries=2)
    assert result["id"] == "9"
    # capped at 30s; default 10s without header
    assert waits == [30.0, 10.0]


def test_rate_limit_retries_exhausted(monkeypatch):
    async def fake_sleep(seconds):
        return None

    monkeypatch.setattr(client_module.asyncio, "sleep", fake_sleep)
    rec = Recorder(
        httpx.Response(429, json={"message": "slow down"}),
        httpx.Response(429, json={"message": "still slow"}),
    )
    with pytest.raises(HubSpotRateLimitError) as exc:
        _call(rec, "create_one", "contacts", {"email": "a"}, rate_limit_retries=1)
    assert exc.value.message == "still slow"
    assert len(rec.requests) == 2


def test_transport_error_maps_to_network_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(HubSpotNetworkError, match="connection refused"):
        _call(handler, "create_one", "contacts", {"email": "a"})


def test_health_check():
    rec = Recorder(httpx.Response(200, json={"results": []}))
    assert _call(rec, "health_check") == {"results": []}
    request = rec.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/crm/v3/objects/contacts"
    assert request.url.params["limit"] == "1"


def test_custom_base_url():
    rec = Recorder(httpx.Response(201, json={"id": "1"}))
    _call(rec, "create_one", "deals", {"dealname": "x"}, base_url="http://hubspot.local/")
    assert str(rec.requests[0].url) == "http://hubspot.local/crm/v3/objects/deals"


def test_non_json_success_body_is_hubspot_error():
    rec = Recorder(httpx.Response(200, text="<html>upstream hiccup</html>"))
    with pytest.raises(HubSpotError) as exc:
        _call(rec, "batch_create", "contacts", [{"email": "a"}])
    assert exc.value.status_code == 200
    assert exc.value.body is None
    assert "non-JSON" in exc.value.message


def test_non_object_success_body_is_hubspot_error():
    rec = Recorder(httpx.Response(201, json=["unexpected"]))
    with pytest.raises(HubSpotError, match="unexpected response"):
        _call(rec, "create_one", "contacts", {"email": "a"})


def test_decoding_error_maps_to_network_error():
    def handler(request):
        raise httpx.DecodingError("invalid gzip stream", request=request)

    with pytest.raises(HubSpotNetworkError, match="invalid gzip stream"):
        _call(handler, "create_one", "contacts", {"email": "a"})
