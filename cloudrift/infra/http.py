from __future__ import annotations

import asyncio
import json as jsonlib
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import aiohttp
from loguru import logger

from cloudrift.core.exceptions import (
    APIError,
    CloudRiftError,
    NotFoundError,
    SchemaError,
    TransportError,
)
from cloudrift.retry import Sleep, exponential, retry

# Failures below the HTTP status layer, such as a refused connection or a
# truncated body. Status errors are never retried here.
TRANSPORT_ERRORS: tuple[type[Exception], ...] = (
    aiohttp.ClientError,
    asyncio.TimeoutError,
)


def is_transport_error(error: Exception) -> bool:
    return isinstance(error, TRANSPORT_ERRORS) and not isinstance(
        error, aiohttp.ClientResponseError
    )

API_KEY_HEADER = "X-API-KEY"

# ─── Response ────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Response[T]:
    status: int
    data: T
    headers: dict[str, str]
    url: str


@dataclass(frozen=True, slots=True)
class _RawResponse:
    status: int
    body: bytes
    headers: dict[str, str]


# ─── Auth ────────────────────────────────────────────────────────────


@runtime_checkable
class Auth(Protocol):
    async def headers(self) -> dict[str, str]: ...


class ApiKeyAuth:
    def __init__(self, token: str) -> None:
        self._token = token

    async def headers(self) -> dict[str, str]:
        return {
            API_KEY_HEADER: self._token,
            "Accept": "application/json",
        }


# ─── Client ──────────────────────────────────────────────────────────


class HttpClient:
    """Stateless request executor sharing one session, token and retry policy.

    ``execute`` sends a request, retrying transport failures with exponential
    backoff (1s, 2s, 4s, ...) up to ``retries`` extra attempts, then classifies
    the response: 2xx goes to the caller's parser, 404 raises NotFoundError,
    anything else raises APIError.
    """

    def __init__(
        self,
        base_url: str,
        auth: Auth | None = None,
        *,
        timeout: float = 10,
        retries: int = 0,
        default_headers: dict[str, str] | None = None,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._auth = auth
        self._timeout = aiohttp.ClientTimeout(total=timeout)
        self._retries = max(retries, 0)
        self._default_headers = default_headers or {}
        self._sleep = sleep
        self._session: aiohttp.ClientSession | None = None
        self._log = logger.bind(component="http")

    @property
    def retries(self) -> int:
        return self._retries

    def _url(self, path: str) -> str:
        return f"{self._base_url}/{path.lstrip('/')}"

    def _open_session(self) -> aiohttp.ClientSession:
        # one session per client, reopened lazily after close()
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def _send(
        self,
        method: str,
        url: str,
        json: dict[str, Any] | None,
    ) -> _RawResponse:
        session = self._open_session()
        auth = await self._auth.headers() if self._auth else {}
        headers = {**self._default_headers, **auth}
        self._log.debug("{method} {url}", method=method, url=url)
        async with session.request(method, url, headers=headers, json=json) as resp:
            body = await resp.read()
            return _RawResponse(status=resp.status, body=body, headers=dict(resp.headers))

    async def execute[T](
        self,
        method: str,
        path: str,
        *,
        json: dict[str, Any] | None = None,
        parse: Callable[[Response[Any]], T],
    ) -> T:
        url = self._url(path)
        send = retry(
            on=is_transport_error,
            max_attempts=self._retries + 1,
            backoff=exponential(base_delay=1.0, exponential_base=2.0),
            sleep=self._sleep,
        )(self._send)

        try:
            raw = await send(method, url, json)
        except aiohttp.ClientResponseError as e:
            raise APIError(url, e.status, e.message) from e
        except TRANSPORT_ERRORS as e:
            self._log.error(
                "{method} {url} failed after {retries} retries: {error}",
                method=method, url=url, retries=self._retries, error=repr(e),
            )
            raise TransportError(url, self._retries, e) from e

        if raw.status == 404:
            self._log.debug("{method} {url}: not found", method=method, url=url)
            raise NotFoundError(f"resource not found: {url}")

        if not 200 <= raw.status < 300:
            body = raw.body.decode(errors="replace")
            self._log.warning(
                "HTTP {status} from {url}: {body}",
                status=raw.status, url=url, body=body[:500],
            )
            raise APIError(url, raw.status, body)

        response = Response(
            status=raw.status,
            data=self._decode(url, raw.body),
            headers=raw.headers,
            url=url,
        )
        try:
            return parse(response)
        except CloudRiftError:
            raise
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise SchemaError(f"unexpected response shape from {url}: {e!r}") from e

    @staticmethod
    def _decode(url: str, body: bytes) -> Any:
        if not body.strip():
            return None
        try:
            return jsonlib.loads(body)
        except ValueError as e:
            raise SchemaError(f"response from {url} is not valid JSON: {e}") from e

    # ─── Lifecycle ───────────────────────────────────────────────────

    async def close(self) -> None:
        session, self._session = self._session, None
        if session is not None and not session.closed:
            await session.close()

    async def __aenter__(self) -> HttpClient:
        self._open_session()
        return self

    async def __aexit__(self, *_exc: object) -> None:
        await self.close()
