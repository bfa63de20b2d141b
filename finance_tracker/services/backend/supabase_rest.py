"""
Supabase Backend Implementation

DESIGN DECISION: We talk to the hosted service over its REST surface
(the PostgREST data API and the GoTrue auth API) with httpx, because:
1. Every operation the app needs is a single HTTP round trip
2. Async requests let a refresh fetch all collections concurrently
3. Error responses carry structured Postgres codes we can classify

TRADEOFFS:
- One attempt per call. No retries, no backoff: a failed write is
  surfaced to the user, a failed read leaves cached data in place.
- Row-level security on the server is what actually scopes data to
  the signed-in user; the owner filters we send are a second fence.
"""

import base64
import hashlib
import secrets
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import urlencode

import httpx
import structlog
from pydantic import ValidationError

from finance_tracker.config import SupabaseSettings, get_settings
from finance_tracker.models.auth import AuthSession, Identity, OAuthRequest
from finance_tracker.models.finance import RECORD_MODELS, Collection, FinanceRecord
from finance_tracker.services.backend.interface import (
    AuthBackend,
    AuthError,
    BackendConnectionError,
    BackendError,
    BackendGateway,
    classify_backend_error,
)


logger = structlog.get_logger(__name__)

REST_PREFIX = "/rest/v1"
AUTH_PREFIX = "/auth/v1"

# Ask the data API to return the written row as a single JSON object
SINGLE_OBJECT = "application/vnd.pgrst.object+json"


def _error_from_response(response: httpx.Response) -> BackendError:
    """Build a typed error from a failed response."""
    try:
        payload = response.json()
    except ValueError:
        payload = {}
    if not isinstance(payload, dict):
        payload = {}

    message = (
        payload.get("message")
        or payload.get("msg")
        or payload.get("error_description")
        or payload.get("error")
        or response.reason_phrase
        or f"HTTP {response.status_code}"
    )

    # The auth API puts the HTTP status in "code" and the reason in "error_code"
    code = payload.get("code")
    if code is None or isinstance(code, int):
        code = payload.get("error_code")

    return classify_backend_error(
        str(message),
        code=str(code) if code is not None else None,
        details=payload.get("details"),
        status_code=response.status_code,
    )


def _filter_value(value: Any) -> str:
    """Render an equality filter in the data API's query syntax."""
    if value is None:
        return "is.null"
    if isinstance(value, bool):
        return f"eq.{str(value).lower()}"
    if isinstance(value, Enum):
        return f"eq.{value.value}"
    return f"eq.{value}"


class SupabaseClient:
    """
    Low-level HTTP client wrapper.

    Owns the connection pool and the headers every request needs.
    Translates transport failures into BackendConnectionError.
    """

    def __init__(
        self,
        settings: Optional[SupabaseSettings] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings or get_settings().supabase
        self._http = http_client or httpx.AsyncClient(
            base_url=self._settings.url,
            timeout=self._settings.request_timeout_seconds,
        )

    @property
    def base_url(self) -> str:
        return self._settings.url

    @property
    def oauth_redirect_url(self) -> Optional[str]:
        return self._settings.oauth_redirect_url

    def _headers(self, access_token: Optional[str]) -> dict[str, str]:
        # Signed-out requests authenticate as the anonymous role
        return {
            "apikey": self._settings.anon_key,
            "Authorization": f"Bearer {access_token or self._settings.anon_key}",
        }

    async def request(
        self,
        method: str,
        path: str,
        *,
        access_token: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> httpx.Response:
        """
        Send one request. Does not raise on HTTP error statuses.

        Raises:
            BackendConnectionError: If the request could not complete
        """
        merged = self._headers(access_token)
        if headers:
            merged.update(headers)

        logger.debug("backend_request", method=method, path=path)
        try:
            return await self._http.request(
                method,
                path,
                params=params,
                json=json,
                headers=merged,
            )
        except httpx.TimeoutException as e:
            raise BackendConnectionError(f"Request timed out: {method} {path}") from e
        except httpx.RequestError as e:
            raise BackendConnectionError(f"Could not reach backend: {e}") from e

    async def close(self) -> None:
        """Close the HTTP client."""
        await self._http.aclose()


class SupabaseGateway(BackendGateway):
    """
    Data API implementation of the gateway.

    Each collection is a table at /rest/v1/<collection>.
    """

    def __init__(
        self,
        client: SupabaseClient,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
    ):
        """
        Args:
            client: Shared HTTP client
            token_provider: Returns the current access token, if signed in
        """
        self._client = client
        self._token_provider = token_provider or (lambda: None)

    def _path(self, collection: Collection) -> str:
        return f"{REST_PREFIX}/{collection.value}"

    def _json(self, collection: Collection, response: httpx.Response) -> Any:
        try:
            return response.json()
        except ValueError as e:
            raise BackendError(
                f"Backend returned a non-JSON {collection.value} response",
                status_code=response.status_code,
            ) from e

    def _parse(self, collection: Collection, row: dict[str, Any]) -> FinanceRecord:
        try:
            return RECORD_MODELS[collection].model_validate(row)
        except ValidationError as e:
            raise BackendError(
                f"Backend returned a malformed {collection.value} record: {e}"
            ) from e

    async def _send(
        self,
        method: str,
        collection: Collection,
        **kwargs: Any,
    ) -> httpx.Response:
        response = await self._client.request(
            method,
            self._path(collection),
            access_token=self._token_provider(),
            **kwargs,
        )
        if response.is_error:
            error = _error_from_response(response)
            logger.warning(
                "backend_request_failed",
                method=method,
                collection=collection.value,
                status_code=response.status_code,
                code=error.code,
                error=error.message,
            )
            raise error
        return response

    async def list_records(
        self,
        collection: Collection,
        filters: Optional[dict[str, Any]] = None,
        order_by: Optional[str] = None,
        ascending: bool = True,
    ) -> list[FinanceRecord]:
        params: dict[str, Any] = {"select": "*"}
        for field, value in (filters or {}).items():
            params[field] = _filter_value(value)
        if order_by:
            params["order"] = f"{order_by}.{'asc' if ascending else 'desc'}"

        response = await self._send("GET", collection, params=params)
        rows = self._json(collection, response)
        if not isinstance(rows, list):
            raise BackendError(
                f"Backend returned a malformed {collection.value} listing",
                status_code=response.status_code,
            )

        records = []
        for row in rows:
            try:
                records.append(RECORD_MODELS[collection].model_validate(row))
            except ValidationError as e:
                # Skip malformed rows rather than losing the whole collection
                logger.warning(
                    "malformed_record_skipped",
                    collection=collection.value,
                    record_id=row.get("id") if isinstance(row, dict) else None,
                    error=str(e),
                )
        return records

    async def insert_record(
        self,
        collection: Collection,
        values: dict[str, Any],
    ) -> FinanceRecord:
        response = await self._send(
            "POST",
            collection,
            json=values,
            headers={"Prefer": "return=representation", "Accept": SINGLE_OBJECT},
        )
        return self._parse(collection, self._json(collection, response))

    async def update_record(
        self,
        collection: Collection,
        record_id: str,
        patch: dict[str, Any],
    ) -> FinanceRecord:
        response = await self._send(
            "PATCH",
            collection,
            params={"id": _filter_value(record_id)},
            json=patch,
            headers={"Prefer": "return=representation", "Accept": SINGLE_OBJECT},
        )
        return self._parse(collection, self._json(collection, response))

    async def delete_record(
        self,
        collection: Collection,
        record_id: str,
    ) -> None:
        await self._send(
            "DELETE",
            collection,
            params={"id": _filter_value(record_id)},
            headers={"Prefer": "return=minimal"},
        )


class SupabaseAuth(AuthBackend):
    """
    Auth API implementation.

    OAuth sign-in uses the PKCE flow: the browser is sent to the provider,
    and the code it comes back with is exchanged for a session here.
    """

    def __init__(self, client: SupabaseClient):
        self._client = client

    async def _post(
        self,
        path: str,
        *,
        params: Optional[dict[str, str]] = None,
        json: Optional[dict[str, Any]] = None,
        access_token: Optional[str] = None,
    ) -> httpx.Response:
        response = await self._client.request(
            "POST",
            f"{AUTH_PREFIX}{path}",
            params=params,
            json=json,
            access_token=access_token,
        )
        self._raise_for_auth(response)
        return response

    def _raise_for_auth(self, response: httpx.Response) -> None:
        if response.is_error:
            error = _error_from_response(response)
            raise AuthError(
                error.message,
                code=error.code,
                details=error.details,
                status_code=error.status_code,
            )

    def authorization_request(
        self,
        provider: str,
        redirect_to: Optional[str] = None,
    ) -> OAuthRequest:
        code_verifier = secrets.token_urlsafe(64)
        digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
        code_challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")

        params = {
            "provider": provider,
            "code_challenge": code_challenge,
            "code_challenge_method": "s256",
        }
        redirect_to = redirect_to or self._client.oauth_redirect_url
        if redirect_to:
            params["redirect_to"] = redirect_to

        return OAuthRequest(
            provider=provider,
            url=f"{self._client.base_url}{AUTH_PREFIX}/authorize?{urlencode(params)}",
            code_verifier=code_verifier,
            redirect_to=redirect_to,
        )

    async def exchange_code(self, auth_code: str, code_verifier: str) -> AuthSession:
        response = await self._post(
            "/token",
            params={"grant_type": "pkce"},
            json={"auth_code": auth_code, "code_verifier": code_verifier},
        )
        return AuthSession.from_token_payload(response.json())

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        response = await self._post(
            "/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )
        return AuthSession.from_token_payload(response.json())

    async def sign_up(
        self,
        email: str,
        password: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> Optional[AuthSession]:
        response = await self._post(
            "/signup",
            json={"email": email, "password": password, "data": metadata or {}},
        )
        payload = response.json()
        if "access_token" not in payload:
            # Email confirmation pending; no session yet
            return None
        return AuthSession.from_token_payload(payload)

    async def get_user(self, access_token: str) -> Identity:
        response = await self._client.request(
            "GET",
            f"{AUTH_PREFIX}/user",
            access_token=access_token,
        )
        self._raise_for_auth(response)
        return Identity.from_user_payload(response.json())

    async def refresh_session(self, refresh_token: str) -> AuthSession:
        response = await self._post(
            "/token",
            params={"grant_type": "refresh_token"},
            json={"refresh_token": refresh_token},
        )
        return AuthSession.from_token_payload(response.json())

    async def sign_out(self, access_token: str) -> None:
        await self._post("/logout", access_token=access_token)
