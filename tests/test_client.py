import json
from base64 import b64decode
from unittest.mock import Mock

import pytest
import requests

from ado_sync.client import JSON_PATCH_CONTENT_TYPE, AdoClient
from ado_sync.errors import (
    AdoApiError,
    AdoAuthenticationError,
    AdoConcurrencyError,
    AdoConfigurationError,
    AdoNetworkError,
    AdoRateLimitError,
    AdoTimeoutError,
)
from ado_sync.rate_limiter import RateLimiter
from ado_sync.retry import RetryManager

API_URL = "https://dev.azure.com/contoso/Fabrikam/_apis"


def make_response(status_code=200, body=None, headers=None, text=None):
    response = requests.Response()
    response.status_code = status_code
    response.reason = {200: "OK", 404: "Not Found", 429: "Too Many Requests"}.get(status_code, "")
    response.headers.update(headers or {})
    if body is not None:
        response._content = json.dumps(body).encode("utf-8")
        response.headers.setdefault("Content-Type", "application/json; charset=utf-8")
    else:
        response._content = (text or "").encode("utf-8")
    return response


@pytest.fixture
def limiter_sleep():
    return Mock(name="limiter_sleep")


@pytest.fixture
def retry_sleep():
    return Mock(name="retry_sleep")


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


@pytest.fixture
def client(config, session, limiter_sleep, retry_sleep):
    client = AdoClient(
        config=config,
        session=session,
        rate_limiter=RateLimiter(sleep=limiter_sleep),
    )
    client.retry_manager = RetryManager(config.retry, sleep=retry_sleep)
    return client


class TestConstruction:
    def test_requires_organization_and_project(self):
        with pytest.raises(AdoConfigurationError, match="Organization and project are required"):
            AdoClient(organization="contoso", pat="test-pat")

    def test_requires_credential(self):
        with pytest.raises(AdoAuthenticationError, match="No Azure DevOps credential found"):
            AdoClient(organization="contoso", project="Fabrikam")

    def test_uses_environment_configuration(self, monkeypatch):
        monkeypatch.setenv("ADO_ORGANIZATION", "env-org")
        monkeypatch.setenv("ADO_PROJECT", "EnvProject")
        monkeypatch.setenv("AZURE_DEVOPS_EXT_PAT", "env-pat")

        client = AdoClient()

        assert client.organization == "env-org"
        assert client.project_api_url == "https://dev.azure.com/env-org/EnvProject/_apis"
        client.close()

    def test_basic_auth_header(self, client):
        scheme, encoded = client.headers["Authorization"].split(" ")

        assert scheme == "Basic"
        assert b64decode(encoded).decode("ascii") == ":test-pat"
        assert client.headers["Content-Type"] == "application/json"

    def test_url_helpers(self, client):
        assert client.project_api_url == API_URL
        assert client.work_item_web_url(5) == "https://dev.azure.com/contoso/Fabrikam/_workitems/edit/5"
        assert client.work_item_api_url(5) == f"{API_URL}/wit/workItems/5"
        assert (
            client.pull_request_web_url("web", 9)
            == "https://dev.azure.com/contoso/Fabrikam/_git/web/pullrequest/9"
        )

    def test_context_manager_closes_session(self, config, session):
        with AdoClient(config=config, session=session):
            pass

        session.close.assert_called_once()


class TestRequests:
    def test_get_adds_api_version_and_timeout(self, client, session):
        session.request.return_value = make_response(body={"id": 1})

        result = client.get(f"{API_URL}/wit/workitems/1", params={"$expand": "Relations"})

        assert result == {"id": 1}
        session.request.assert_called_once_with(
            "GET",
            f"{API_URL}/wit/workitems/1",
            headers=client.headers,
            params={"api-version": "7.1", "$expand": "Relations"},
            timeout=30,
        )

    def test_patch_overrides_content_type(self, client, session):
        session.request.return_value = make_response(body={"id": 1})

        client.patch(f"{API_URL}/wit/workitems/1", json=[], content_type=JSON_PATCH_CONTENT_TYPE)

        kwargs = session.request.call_args.kwargs
        assert kwargs["headers"]["Content-Type"] == JSON_PATCH_CONTENT_TYPE
        assert kwargs["json"] == []
        assert client.headers["Content-Type"] == "application/json", "Shared headers must not change"

    def test_api_version_override(self, client, session):
        session.request.return_value = make_response(body={})

        client.get(f"{API_URL}/wit/workitems/1/comments", api_version="7.1-preview.4")

        assert session.request.call_args.kwargs["params"]["api-version"] == "7.1-preview.4"

    def test_empty_body_returns_none(self, client, session):
        session.request.return_value = make_response(status_code=204)

        assert client.delete(f"{API_URL}/wit/workitems/1") is None

    def test_requests_pass_through_rate_limiter(self, client, session):
        session.request.return_value = make_response(body={})

        client.get(API_URL)
        client.get(API_URL)

        assert client.rate_limiter.request_count == 2


class TestRateLimitHandling:
    def test_429_waits_and_replays_once(self, client, session, limiter_sleep):
        session.request.side_effect = [
            make_response(429, headers={"Retry-After": "7"}, text="slow down"),
            make_response(body={"ok": True}),
        ]

        result = client.get(API_URL)

        assert result == {"ok": True}
        assert session.request.call_count == 2, "The request should be replayed exactly once"
        limiter_sleep.assert_called_once_with(7)
        assert client.rate_limiter.request_count == 1, "The window restarts after Retry-After"

    def test_429_without_header_uses_default(self, client, session, limiter_sleep):
        session.request.side_effect = [make_response(429), make_response(body={})]

        client.get(API_URL)

        limiter_sleep.assert_called_once_with(60)

    def test_fractional_retry_after_rounds_up(self, client, session, limiter_sleep):
        session.request.side_effect = [
            make_response(429, headers={"Retry-After": "1.5"}),
            make_response(body={}),
        ]

        client.get(API_URL)

        limiter_sleep.assert_called_once_with(2)

    def test_second_429_raises(self, client, session):
        session.request.side_effect = [
            make_response(429, headers={"Retry-After": "1"}),
            make_response(429, headers={"Retry-After": "30"}),
        ]

        with pytest.raises(AdoRateLimitError) as exc_info:
            client.get(API_URL)

        assert exc_info.value.retry_after == 30
        assert session.request.call_count == 2, "Rate limit errors are not retried again"


class TestErrorMapping:
    def test_server_error_is_retried_once(self, client, session, retry_sleep):
        session.request.side_effect = [make_response(503, text="busy"), make_response(body={"id": 2})]

        assert client.get(API_URL) == {"id": 2}
        retry_sleep.assert_called_once()

    def test_persistent_server_error_raises_network_error(self, client, session):
        session.request.side_effect = [make_response(500), make_response(502)]

        with pytest.raises(AdoNetworkError) as exc_info:
            client.get(API_URL)

        assert exc_info.value.status_code == 502
        assert session.request.call_count == 2

    def test_client_error_is_not_retried(self, client, session, retry_sleep):
        session.request.return_value = make_response(
            404,
            body={
                "message": "TF401232: Work item 9 does not exist",
                "innerException": {"message": "inner detail"},
            },
        )

        with pytest.raises(AdoApiError) as exc_info:
            client.get(f"{API_URL}/wit/workitems/9")

        error = exc_info.value
        assert error.status_code == 404
        assert "TF401232" in str(error) and "inner detail" in str(error)
        assert error.context["correlation_id"] == client.correlation_id
        assert session.request.call_count == 1
        retry_sleep.assert_not_called()

    @pytest.mark.parametrize("status_code", [409, 412])
    def test_revision_mismatch(self, client, session, status_code):
        session.request.return_value = make_response(status_code, body={"message": "rev mismatch"})

        with pytest.raises(AdoConcurrencyError) as exc_info:
            client.patch(f"{API_URL}/wit/workitems/1", json=[])

        assert exc_info.value.error_code == "ADO_REVISION_MISMATCH"

    def test_unauthorized(self, client, session):
        session.request.return_value = make_response(401, text="")

        with pytest.raises(AdoAuthenticationError):
            client.get(API_URL)

    def test_sign_in_page(self, client, session):
        session.request.return_value = make_response(
            200,
            headers={"Content-Type": "text/html; charset=utf-8"},
            text="<html><title>Azure DevOps Services | Sign In</title></html>",
        )

        with pytest.raises(AdoAuthenticationError):
            client.get(API_URL)

    def test_timeout_is_retried_then_raised(self, client, session, retry_sleep):
        session.request.side_effect = requests.exceptions.Timeout("read timed out")

        with pytest.raises(AdoTimeoutError) as exc_info:
            client.get(API_URL)

        assert exc_info.value.timeout_seconds == 30
        assert isinstance(exc_info.value.original_exception, requests.exceptions.Timeout)
        assert session.request.call_count == 2
        retry_sleep.assert_called_once()

    def test_connection_error_becomes_network_error(self, client, session):
        session.request.side_effect = [
            requests.exceptions.ConnectionError("refused"),
            make_response(body={"ok": True}),
        ]

        assert client.get(API_URL) == {"ok": True}


class TestConnection:
    def test_connection_ok(self, client, session):
        session.request.return_value = make_response(body={"value": []})

        assert client.test_connection() is True
        assert session.request.call_args.args == ("GET", f"{API_URL}/wit/workitemtypes")

    def test_connection_failure_returns_false(self, client, session):
        session.request.return_value = make_response(404, body={"message": "project not found"})

        assert client.test_connection() is False

    def test_connection_auth_failure_raises(self, client, session):
        session.request.return_value = make_response(401)

        with pytest.raises(AdoAuthenticationError):
            client.test_connection()
