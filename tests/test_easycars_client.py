"""Tests for the EasyCars API client: tokens, envelope errors, retries, log redaction."""

import json
from typing import Callable, List

import httpx
import pytest
from prometheus_client import REGISTRY

from easycars_sync.config import Settings
from easycars_sync.schemas.easycars import CreateLeadRequest
from easycars_sync.services.credential_store import DecryptedCredential
from easycars_sync.services.easycars_client import EasyCarsApiClient, sanitize_for_log
from easycars_sync.services.easycars_errors import (
    EasyCarsAuthenticationError,
    EasyCarsErrorKind,
    EasyCarsFatalError,
    EasyCarsTemporaryError,
    EasyCarsTransportError,
    EasyCarsUnknownError,
    EasyCarsValidationError,
    error_for_response_code,
)
from easycars_sync.services.token_cache import TokenCache

TOKEN_PATH = "/api/RequestToken"
STOCK_PATH = "/api/Stock/GetAdvertisementStocks"

CREDENTIAL = DecryptedCredential(
    dealership_id=1,
    account_number="AC-0001",
    account_secret="account-secret",
    environment="Test",
    yard_code="YARD1",
)


class _Recorder:
    """Collects requests and answers them from a routing function."""

    def __init__(self, route: Callable[[httpx.Request, int], httpx.Response]):
        self.route = route
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.route(request, len(self.requests))

    def paths(self) -> List[str]:
        return [r.url.path for r in self.requests]


def _token_response() -> httpx.Response:
    return httpx.Response(200, json={"ResponseCode": 0, "Token": "tok-1"})


def _api_outcomes(outcome: str) -> float:
    return REGISTRY.get_sample_value("easycars_api_requests_total", {"outcome": outcome}) or 0.0


def _settings(**overrides) -> Settings:
    values = {
        "ENCRYPTION_KEY": "dGVzdC1rZXktZm9yLXB5dGVzdC0xMjM0NTY3ODkwMTI=",
        "EASYCARS_RETRY_ATTEMPTS": 3,
        "EASYCARS_RETRY_DELAY_MS": 1000,
    }
    values.update(overrides)
    return Settings(**values)


def _client(recorder: _Recorder, sleeps: List[float], **overrides) -> EasyCarsApiClient:
    async def fake_sleep(delay: float):
        sleeps.append(delay)

    http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return EasyCarsApiClient(TokenCache(), settings=_settings(**overrides), http_client=http, sleep=fake_sleep)


# ===========================================================================
# Error taxonomy
# ===========================================================================

class TestErrorForResponseCode:

    def test_success_code_has_no_error(self):
        assert error_for_response_code(0) is None

    @pytest.mark.parametrize(
        "code, error_cls",
        [
            (1, EasyCarsAuthenticationError),
            (5, EasyCarsTemporaryError),
            (7, EasyCarsValidationError),
            (9, EasyCarsFatalError),
        ],
    )
    def test_known_codes(self, code, error_cls):
        error = error_for_response_code(code, "boom")
        assert isinstance(error, error_cls)
        assert error.response_code == code
        assert str(error) == "boom"

    def test_unknown_code(self):
        error = error_for_response_code(42)
        assert isinstance(error, EasyCarsUnknownError)
        assert str(error) == "Unknown response code: 42"

    def test_only_temporary_and_transport_are_retryable(self):
        assert EasyCarsTemporaryError("x").retryable
        assert EasyCarsTransportError("x").retryable
        assert not EasyCarsAuthenticationError("x").retryable
        assert not EasyCarsValidationError("x").retryable
        assert not EasyCarsFatalError("x").retryable
        assert not EasyCarsUnknownError("x").retryable


# ===========================================================================
# Tokens
# ===========================================================================

class TestTokens:

    async def test_token_request_uses_account_pair(self):
        def route(request, n):
            return _token_response()

        recorder = _Recorder(route)
        client = _client(recorder, [])
        token = await client.get_or_refresh_token(CREDENTIAL)

        assert token == "tok-1"
        body = json.loads(recorder.requests[0].content)
        assert body == {"PublicID": "AC-0001", "SecretKey": "account-secret"}
        assert recorder.requests[0].url.host == "test.easycars.com"

    async def test_client_pair_preferred_and_production_url(self):
        recorder = _Recorder(lambda request, n: _token_response())
        client = _client(recorder, [])
        credential = DecryptedCredential(
            dealership_id=2,
            account_number="AC-0002",
            account_secret="account-secret",
            environment="Production",
            client_id="client-id",
            client_secret="client-secret",
        )
        await client.get_or_refresh_token(credential)

        body = json.loads(recorder.requests[0].content)
        assert body == {"PublicID": "client-id", "SecretKey": "client-secret"}
        assert recorder.requests[0].url.host == "api.easycars.com"

    async def test_token_is_cached_between_calls(self):
        def route(request, n):
            if request.url.path == TOKEN_PATH:
                return _token_response()
            return httpx.Response(200, json={"ResponseCode": 0, "Stocks": []})

        recorder = _Recorder(route)
        client = _client(recorder, [])
        await client.get_advertisement_stocks(CREDENTIAL, "YARD1")
        await client.get_advertisement_stocks(CREDENTIAL, "YARD1")

        assert recorder.paths().count(TOKEN_PATH) == 1
        assert recorder.paths().count(STOCK_PATH) == 2
        stock_request = recorder.requests[1]
        assert stock_request.headers["Authorization"] == "Bearer tok-1"
        assert stock_request.url.params["yardCode"] == "YARD1"

    async def test_rejected_token_is_refreshed_once(self):
        def route(request, n):
            if request.url.path == TOKEN_PATH:
                return httpx.Response(200, json={"ResponseCode": 0, "Token": f"tok-{n}"})
            if n == 2:
                return httpx.Response(401, json={"ResponseCode": 1})
            return httpx.Response(200, json={"ResponseCode": 0, "Stocks": [{"StockNumber": "S1"}]})

        recorder = _Recorder(route)
        client = _client(recorder, [])
        stocks = await client.get_advertisement_stocks(CREDENTIAL)

        assert stocks == [{"StockNumber": "S1"}]
        assert recorder.paths() == [TOKEN_PATH, STOCK_PATH, TOKEN_PATH, STOCK_PATH]
        assert recorder.requests[3].headers["Authorization"] == "Bearer tok-3"

    async def test_token_http_401_is_authentication_error(self):
        recorder = _Recorder(lambda request, n: httpx.Response(401, text="Unauthorized"))
        client = _client(recorder, [])
        with pytest.raises(EasyCarsAuthenticationError) as exc_info:
            await client.test_connection("AC-0001", "wrong", "Test")
        assert exc_info.value.response_code == 1

    async def test_token_response_without_token(self):
        recorder = _Recorder(lambda request, n: httpx.Response(200, json={"ResponseCode": 0}))
        client = _client(recorder, [])
        with pytest.raises(EasyCarsUnknownError):
            await client.test_connection("AC-0001", "secret", "Test")


# ===========================================================================
# Request pipeline
# ===========================================================================

class TestExecute:

    async def test_temporary_error_retries_with_backoff(self):
        def route(request, n):
            if request.url.path == TOKEN_PATH:
                return _token_response()
            if n < 4:
                return httpx.Response(200, json={"ResponseCode": 5, "ErrorMessage": "busy"})
            return httpx.Response(200, json={"ResponseCode": 0, "Stocks": []})

        sleeps: List[float] = []
        recorder = _Recorder(route)
        client = _client(recorder, sleeps)
        assert await client.get_advertisement_stocks(CREDENTIAL) == []
        assert sleeps == [1.0, 2.0]
        assert recorder.paths().count(STOCK_PATH) == 3

    async def test_null_stocks_is_empty_list(self):
        def route(request, n):
            if request.url.path == TOKEN_PATH:
                return _token_response()
            return httpx.Response(200, json={"ResponseCode": 0, "Stocks": None})

        client = _client(_Recorder(route), [])
        assert await client.get_advertisement_stocks(CREDENTIAL) == []

    async def test_token_fetch_is_not_counted_as_separate_call(self):
        def route(request, n):
            if request.url.path == TOKEN_PATH:
                return _token_response()
            return httpx.Response(200, json={"ResponseCode": 0, "Stocks": []})

        before = _api_outcomes("success")
        client = _client(_Recorder(route), [])
        await client.get_advertisement_stocks(CREDENTIAL)

        assert _api_outcomes("success") - before == 1

    async def test_temporary_error_exhausts_attempts(self):
        def route(request, n):
            if request.url.path == TOKEN_PATH:
                return _token_response()
            return httpx.Response(200, json={"ResponseCode": 5})

        sleeps: List[float] = []
        client = _client(_Recorder(route), sleeps)
        with pytest.raises(EasyCarsTemporaryError) as exc_info:
            await client.get_advertisement_stocks(CREDENTIAL)
        assert exc_info.value.kind is EasyCarsErrorKind.TEMPORARY
        assert sleeps == [1.0, 2.0]

    @pytest.mark.parametrize(
        "code, error_cls",
        [(1, EasyCarsAuthenticationError), (7, EasyCarsValidationError), (9, EasyCarsFatalError)],
    )
    async def test_non_retryable_codes_fail_immediately(self, code, error_cls):
        def route(request, n):
            if request.url.path == TOKEN_PATH:
                return _token_response()
            return httpx.Response(200, json={"ResponseCode": code, "ResponseMessage": "nope"})

        sleeps: List[float] = []
        recorder = _Recorder(route)
        client = _client(recorder, sleeps)
        with pytest.raises(error_cls) as exc_info:
            await client.get_advertisement_stocks(CREDENTIAL)
        assert str(exc_info.value) == "nope"
        assert sleeps == []
        assert recorder.paths().count(STOCK_PATH) == 1

    async def test_network_error_is_transport_and_retried(self):
        def route(request, n):
            if request.url.path == TOKEN_PATH:
                return _token_response()
            raise httpx.ConnectError("connection refused", request=request)

        sleeps: List[float] = []
        client = _client(_Recorder(route), sleeps)
        with pytest.raises(EasyCarsTransportError):
            await client.get_advertisement_stocks(CREDENTIAL)
        assert len(sleeps) == 2

    async def test_non_json_gateway_error_is_transport(self):
        def route(request, n):
            if request.url.path == TOKEN_PATH:
                return _token_response()
            return httpx.Response(502, text="<html>Bad Gateway</html>")

        client = _client(_Recorder(route), [], EASYCARS_RETRY_ATTEMPTS=1)
        with pytest.raises(EasyCarsTransportError):
            await client.get_advertisement_stocks(CREDENTIAL)

    async def test_non_json_client_error_is_unknown(self):
        def route(request, n):
            if request.url.path == TOKEN_PATH:
                return _token_response()
            return httpx.Response(404, text="not found")

        client = _client(_Recorder(route), [])
        with pytest.raises(EasyCarsUnknownError):
            await client.get_advertisement_stocks(CREDENTIAL)

    async def test_envelope_keys_are_case_insensitive(self):
        def route(request, n):
            if request.url.path == TOKEN_PATH:
                return _token_response()
            return httpx.Response(200, json={"responseCode": 0, "leadNumber": "EC-9", "customerNo": "C-9"})

        client = _client(_Recorder(route), [])
        request = CreateLeadRequest(
            account_number="AC-0001",
            account_secret="account-secret",
            customer_name="Jane Buyer",
            customer_email="jane@example.com",
        )
        response = await client.create_lead(CREDENTIAL, request)
        assert response.lead_number == "EC-9"
        assert response.customer_no == "C-9"

    async def test_create_lead_body_uses_pascal_case(self):
        def route(request, n):
            if request.url.path == TOKEN_PATH:
                return _token_response()
            return httpx.Response(200, json={"ResponseCode": 0, "LeadNumber": "EC-1"})

        recorder = _Recorder(route)
        client = _client(recorder, [])
        request = CreateLeadRequest(
            account_number="AC-0001",
            account_secret="account-secret",
            customer_name="Jane Buyer",
            customer_email="jane@example.com",
            vehicle_interest=1,
        )
        await client.create_lead(CREDENTIAL, request)

        body = json.loads(recorder.requests[1].content)
        assert body["AccountNumber"] == "AC-0001"
        assert body["CustomerName"] == "Jane Buyer"
        assert body["VehicleInterest"] == 1
        assert "CustomerPhone" not in body

    def test_invalid_settings_rejected(self):
        with pytest.raises(ValueError):
            EasyCarsApiClient(TokenCache(), settings=_settings(EASYCARS_TEST_API_URL="not a url"))


# ===========================================================================
# Log redaction
# ===========================================================================

class TestSanitizeForLog:

    def test_redacts_secrets(self):
        body = json.dumps({"PublicID": "AC-0001", "SecretKey": "s3cr3t", "Token": "abc", "AccountSecret": "x"})
        sanitized = sanitize_for_log(body)
        assert "s3cr3t" not in sanitized
        assert "abc" not in sanitized
        assert "AC-0001" not in sanitized
        assert sanitized.count("***REDACTED***") == 4

    def test_keeps_other_fields(self):
        sanitized = sanitize_for_log('{"CustomerName": "Jane"}')
        assert sanitized == '{"CustomerName": "Jane"}'

    def test_truncates_long_bodies(self):
        sanitized = sanitize_for_log("x" * 600)
        assert sanitized.endswith("...[truncated]")
        assert len(sanitized) == 500 + len("...[truncated]")

    def test_empty(self):
        assert sanitize_for_log(None) == ""
