"""EasyCars API client - async httpx client with token caching, retry and error mapping.

Every authenticated call goes through ``execute``:

1. take a bearer token from the TokenCache (requesting one on a miss);
2. send the request; on HTTP 401 drop the token, refresh and replay once;
3. read the ``ResponseCode`` from the JSON envelope and raise the matching
   EasyCarsError variant;
4. retry retryable variants (temporary, transport) with exponential backoff.
"""

from __future__ import annotations

import asyncio
import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, TypeVar

import httpx
from pydantic import ValidationError as PydanticValidationError

from easycars_sync.config import Settings, get_settings
from easycars_sync.schemas.easycars import (
    CreateLeadRequest,
    CreateLeadResponse,
    EasyCarsEnvelope,
    LeadDetailResponse,
    StockResponse,
    TokenRequest,
    TokenResponse,
    UpdateLeadRequest,
    UpdateLeadResponse,
)
from easycars_sync.services.credential_store import DecryptedCredential
from easycars_sync.services.easycars_errors import (
    RESPONSE_CODE_AUTH_FAILURE,
    EasyCarsAuthenticationError,
    EasyCarsError,
    EasyCarsTransportError,
    EasyCarsUnknownError,
    error_for_response_code,
)
from easycars_sync.services.sync_metrics import record_api_outcome
from easycars_sync.services.token_cache import TokenCache, TokenKey

logger = logging.getLogger(__name__)

EnvelopeT = TypeVar("EnvelopeT", bound=EasyCarsEnvelope)

STOCK_PATH = "/Stock/GetAdvertisementStocks"
CREATE_LEAD_PATH = "/Lead/CreateLead"
UPDATE_LEAD_PATH = "/Lead/UpdateLead"
LEAD_DETAIL_PATH = "/Lead/GetLeadDetail"

_LOG_BODY_LIMIT = 500
_SENSITIVE_KEYS = ("publicID", "secretKey", "token", "accountSecret", "clientSecret")
_SENSITIVE_RE = re.compile(
    r'("(?:' + "|".join(_SENSITIVE_KEYS) + r')"\s*:\s*)"[^"]*"',
    re.IGNORECASE,
)

# Shared httpx client with connection pooling; auth headers are per request,
# so one client serves every dealership.
_shared_client: Optional[httpx.AsyncClient] = None


def _get_shared_client() -> httpx.AsyncClient:
    global _shared_client
    if _shared_client is None or _shared_client.is_closed:
        _shared_client = httpx.AsyncClient(
            limits=httpx.Limits(
                max_connections=20,
                max_keepalive_connections=10,
                keepalive_expiry=120,
            ),
        )
    return _shared_client


async def close_shared_client() -> None:
    """Close the shared httpx client (call on app/worker shutdown)."""
    global _shared_client
    if _shared_client is not None and not _shared_client.is_closed:
        await _shared_client.aclose()
        _shared_client = None


def sanitize_for_log(body: Optional[str]) -> str:
    """Redact secrets and tokens from a JSON body and truncate it for logging."""
    if not body:
        return ""
    redacted = _SENSITIVE_RE.sub(r'\1"***REDACTED***"', body)
    if len(redacted) > _LOG_BODY_LIMIT:
        return redacted[:_LOG_BODY_LIMIT] + "...[truncated]"
    return redacted


class EasyCarsApiClient:
    """Authenticated EasyCars calls for one process; share a single TokenCache across instances."""

    def __init__(
        self,
        token_cache: TokenCache,
        settings: Optional[Settings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.settings = settings or get_settings()
        self.settings.validate_easycars()
        self.token_cache = token_cache
        self._http_client = http_client
        self._sleep = sleep
        self._timeout = httpx.Timeout(float(self.settings.EASYCARS_TIMEOUT_SECONDS), connect=10.0)

    @property
    def http(self) -> httpx.AsyncClient:
        return self._http_client or _get_shared_client()

    def base_url(self, environment: Optional[str]) -> str:
        return self.settings.api_url_for(environment)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    async def request_token(self, public_id: str, secret_key: str, environment: str) -> TokenResponse:
        """Call the token endpoint directly (no cache, no retry)."""
        url = f"{self.base_url(environment)}{self.settings.EASYCARS_TOKEN_PATH}"
        body = TokenRequest(public_id=public_id, secret_key=secret_key).to_request_body()
        logger.debug("EasyCars token request %s body=%s", url, sanitize_for_log(json.dumps(body)))

        response = await self._send("POST", url, json_body=body)
        if response.status_code == 401:
            raise EasyCarsAuthenticationError(
                "EasyCars rejected the credentials", response_code=RESPONSE_CODE_AUTH_FAILURE
            )

        token_response = self._parse(response, TokenResponse)
        if not token_response.token:
            raise EasyCarsUnknownError("Token response did not contain a token", token_response.response_code)
        return token_response

    def _token_key(self, credential: DecryptedCredential) -> TokenKey:
        public_id, _ = credential.token_identity()
        return TokenKey(credential.dealership_id, credential.environment, public_id)

    async def get_or_refresh_token(self, credential: DecryptedCredential) -> str:
        key = self._token_key(credential)
        cached = self.token_cache.get(key)
        if cached:
            return cached

        public_id, secret_key = credential.token_identity()
        logger.info(
            "Requesting EasyCars token for dealership %s (%s)",
            credential.dealership_id, credential.environment,
        )
        token_response = await self.request_token(public_id, secret_key, credential.environment)
        self.token_cache.put(key, token_response.token, token_response.expires_at)
        return token_response.token

    async def test_connection(self, public_id: str, secret_key: str, environment: str) -> TokenResponse:
        """Validate a credential pair by requesting a token; nothing is cached."""
        try:
            token_response = await self.request_token(public_id, secret_key, environment)
        except EasyCarsError as exc:
            record_api_outcome(exc.kind.value)
            raise
        record_api_outcome("success")
        return token_response

    # ------------------------------------------------------------------
    # Request pipeline
    # ------------------------------------------------------------------

    async def execute(
        self,
        method: str,
        path: str,
        credential: DecryptedCredential,
        response_model: Type[EnvelopeT],
        *,
        params: Optional[Dict[str, Any]] = None,
        body: Optional[Dict[str, Any]] = None,
    ) -> EnvelopeT:
        """Authenticated call with retry on temporary and transport errors."""
        attempts = max(1, self.settings.EASYCARS_RETRY_ATTEMPTS)
        base_delay = self.settings.EASYCARS_RETRY_DELAY_MS / 1000.0

        for attempt in range(attempts):
            try:
                result = await self._execute_once(method, path, credential, response_model, params, body)
                record_api_outcome("success")
                return result
            except EasyCarsError as exc:
                record_api_outcome(exc.kind.value)
                if not exc.retryable or attempt == attempts - 1:
                    logger.error(
                        "EasyCars %s %s failed for dealership %s after %s attempt(s): %r",
                        method, path, credential.dealership_id, attempt + 1, exc,
                    )
                    raise
                delay = base_delay * (2 ** attempt)
                logger.warning(
                    "EasyCars %s %s attempt %s/%s failed (%s), retrying in %.2fs",
                    method, path, attempt + 1, attempts, exc.kind.value, delay,
                )
                await self._sleep(delay)

        raise RuntimeError("unreachable: retry loop exited without result")

    async def _execute_once(
        self,
        method: str,
        path: str,
        credential: DecryptedCredential,
        response_model: Type[EnvelopeT],
        params: Optional[Dict[str, Any]],
        body: Optional[Dict[str, Any]],
    ) -> EnvelopeT:
        url = f"{self.base_url(credential.environment)}{path}"
        token = await self.get_or_refresh_token(credential)
        if body is not None:
            logger.debug("EasyCars %s %s body=%s", method, path, sanitize_for_log(json.dumps(body, default=str)))

        response = await self._send(method, url, token=token, params=params, json_body=body)
        if response.status_code == 401:
            logger.info(
                "EasyCars token rejected for dealership %s, refreshing and retrying once",
                credential.dealership_id,
            )
            self.token_cache.invalidate(self._token_key(credential))
            token = await self.get_or_refresh_token(credential)
            response = await self._send(method, url, token=token, params=params, json_body=body)
            if response.status_code == 401:
                raise EasyCarsAuthenticationError(
                    "EasyCars rejected a freshly issued token", response_code=RESPONSE_CODE_AUTH_FAILURE
                )

        return self._parse(response, response_model)

    async def _send(
        self,
        method: str,
        url: str,
        *,
        token: Optional[str] = None,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
    ) -> httpx.Response:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            return await self.http.request(
                method,
                url,
                headers=headers,
                params=params,
                json=json_body,
                timeout=self._timeout,
            )
        except httpx.TimeoutException as exc:
            raise EasyCarsTransportError(
                f"EasyCars request timed out after {self.settings.EASYCARS_TIMEOUT_SECONDS}s"
            ) from exc
        except httpx.TransportError as exc:
            raise EasyCarsTransportError(f"Network error calling EasyCars: {exc}") from exc

    def _parse(self, response: httpx.Response, response_model: Type[EnvelopeT]) -> EnvelopeT:
        """Decode the envelope and raise the error variant its ResponseCode names."""
        try:
            payload = response.json()
        except ValueError:
            logger.error(
                "EasyCars returned non-JSON (HTTP %s): %s",
                response.status_code, sanitize_for_log(response.text),
            )
            if response.status_code >= 500:
                raise EasyCarsTransportError(f"EasyCars gateway error (HTTP {response.status_code})")
            raise EasyCarsUnknownError(f"Unreadable EasyCars response (HTTP {response.status_code})")

        if not isinstance(payload, dict):
            raise EasyCarsUnknownError(f"Unexpected EasyCars payload type: {type(payload).__name__}")

        logger.debug("EasyCars response HTTP %s: %s", response.status_code, sanitize_for_log(response.text))

        try:
            envelope = response_model.model_validate(payload)
        except PydanticValidationError as exc:
            raise EasyCarsUnknownError(f"Malformed EasyCars response: {exc.error_count()} invalid field(s)") from exc

        error = error_for_response_code(envelope.response_code, envelope.message)
        if error is not None:
            raise error
        if response.status_code >= 500:
            raise EasyCarsTransportError(f"EasyCars server error (HTTP {response.status_code})")
        if response.is_error:
            raise EasyCarsUnknownError(
                f"EasyCars request failed (HTTP {response.status_code})", envelope.response_code
            )
        return envelope

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def get_advertisement_stocks(
        self,
        credential: DecryptedCredential,
        yard_code: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """All advertised stock for the credential's account, as raw payloads."""
        params = {"yardCode": yard_code} if yard_code else None
        logger.info(
            "Fetching EasyCars stock for dealership %s (yard=%s)",
            credential.dealership_id, yard_code or "all",
        )
        response = await self.execute("GET", STOCK_PATH, credential, StockResponse, params=params)
        logger.info("EasyCars returned %s stock items for dealership %s", len(response.stocks), credential.dealership_id)
        return response.stocks

    async def create_lead(self, credential: DecryptedCredential, request: CreateLeadRequest) -> CreateLeadResponse:
        return await self.execute(
            "POST", CREATE_LEAD_PATH, credential, CreateLeadResponse, body=request.to_request_body()
        )

    async def update_lead(self, credential: DecryptedCredential, request: UpdateLeadRequest) -> UpdateLeadResponse:
        return await self.execute(
            "POST", UPDATE_LEAD_PATH, credential, UpdateLeadResponse, body=request.to_request_body()
        )

    async def get_lead_detail(self, credential: DecryptedCredential, lead_number: str) -> LeadDetailResponse:
        return await self.execute(
            "GET", LEAD_DETAIL_PATH, credential, LeadDetailResponse, params={"leadNumber": lead_number}
        )
