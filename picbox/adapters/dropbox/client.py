"""Dropbox API client."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode, urlsplit

import httpx
from pydantic import ValidationError as PydanticValidationError

from picbox.adapters.dropbox.models import DropboxAccount, DropboxToken
from picbox.adapters.dropbox.retry import (
    DEFAULT_MAX_RETRIES,
    DEFAULT_RETRY_DELAY,
    submit_with_retry,
)
from picbox.domain.exceptions import (
    InvalidJobError,
    MalformedResponseError,
    PermanentError,
    TransientLockError,
)
from picbox.domain.models import JobPending

if TYPE_CHECKING:
    from typing import Self

    from picbox.config import DropboxConfig
    from picbox.domain.models import SyncJob

logger = logging.getLogger(__name__)

LOCK_CONTENTION_MARKER = "Failed to grab locks"

# characters encodeURIComponent leaves unescaped besides alphanumerics and -_.~
_PATH_SAFE_CHARS = "!'()*"

DEFAULT_API_URL = "https://api.dropboxapi.com/1"
DEFAULT_OAUTH_URL = "https://api.dropbox.com/1/oauth2"
DEFAULT_AUTHORIZE_URL = "https://www.dropbox.com/1/oauth2/authorize"


class DropboxClientError(Exception):
    """Raised when the client is used outside its async context."""


def validate_job(job: SyncJob) -> None:
    """Reject jobs that can never succeed before touching the network."""
    if not job.access_token or not job.access_token.strip():
        raise InvalidJobError("Access token is required", details={"field": "access_token"})
    if not job.path or not job.path.strip():
        raise InvalidJobError("Destination path is required", details={"field": "path"})
    parts = urlsplit(job.source_url or "")
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise InvalidJobError(
            "Source URL must be absolute",
            details={"field": "source_url", "value": job.source_url},
        )


def classify_save_url_body(body: Any) -> JobPending:
    """Map a decoded save_url response body to a result or a typed error.

    Sample success: ``{"status": "PENDING", "job": "1mYs8ReIEScAAAAAAAAmIQ"}``
    """
    if not isinstance(body, dict):
        raise MalformedResponseError(
            "save_url response is not a JSON object",
            details={"type": type(body).__name__},
        )

    if "error" in body:
        message = str(body["error"])
        if LOCK_CONTENTION_MARKER in message:
            raise TransientLockError(message)
        raise PermanentError(message)

    job_id = body.get("job")
    if not job_id:
        raise MalformedResponseError("save_url response has neither job nor error", details=body)
    return JobPending(job_id=str(job_id), status=str(body.get("status") or "PENDING"))


def _decode_json(response: httpx.Response, operation: str) -> Any:
    try:
        return response.json()
    except ValueError as exc:
        logger.warning(
            "dropbox_malformed_response",
            extra={
                "operation": operation,
                "status_code": response.status_code,
                "body_preview": response.text[:200],
            },
        )
        raise MalformedResponseError(
            f"{operation} returned a non-JSON body",
            details={"status_code": response.status_code},
        ) from exc


class DropboxClient:
    """Async HTTP client for the Dropbox v1 API endpoints picbox uses."""

    DEFAULT_TIMEOUTS: dict[str, float] = {
        "save_url": 30.0,
        "account_info": 15.0,
        "token": 15.0,
    }

    def __init__(
        self,
        client_id: str = "",
        client_secret: str = "",
        redirect_uri: str = "",
        *,
        api_url: str = DEFAULT_API_URL,
        oauth_url: str = DEFAULT_OAUTH_URL,
        authorize_url: str = DEFAULT_AUTHORIZE_URL,
        timeout: float = 30.0,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.api_url = api_url.rstrip("/")
        self.oauth_url = oauth_url.rstrip("/")
        self.authorize_url = authorize_url
        self.timeout = timeout
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(
        cls, cfg: DropboxConfig, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> DropboxClient:
        return cls(
            cfg.client_id,
            cfg.client_secret,
            cfg.redirect_uri,
            api_url=cfg.api_url,
            oauth_url=cfg.oauth_url,
            authorize_url=cfg.authorize_url,
            timeout=cfg.timeout_sec,
            max_retries=cfg.save_url_max_retries,
            retry_delay=cfg.save_url_retry_delay_sec,
            transport=transport,
        )

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(timeout=self.timeout, transport=self._transport)
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise DropboxClientError("Client not initialized. Use async context manager.")
        return self._client

    def get_timeout(self, endpoint: str) -> float:
        return min(self.DEFAULT_TIMEOUTS.get(endpoint, self.timeout), self.timeout)

    @staticmethod
    def _bearer(access_token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {access_token}"}

    def get_auth_url(self) -> str:
        """URL the user visits to authorize the app."""
        query = urlencode(
            {
                "response_type": "code",
                "client_id": self.client_id,
                "redirect_uri": self.redirect_uri,
            }
        )
        return f"{self.authorize_url}?{query}"

    async def exchange_code(self, code: str) -> DropboxToken:
        """Exchange an OAuth authorization code for an access token.

        Raises:
            PermanentError: Dropbox rejected the code or app credentials.
            MalformedResponseError: The body is not the expected JSON.
        """
        response = await self.client.post(
            f"{self.oauth_url}/token",
            data={
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "grant_type": "authorization_code",
                "redirect_uri": self.redirect_uri,
                "code": code,
            },
            timeout=self.get_timeout("token"),
        )
        body = _decode_json(response, "token")
        if isinstance(body, dict) and "error" in body:
            message = str(body.get("error_description") or body["error"])
            logger.warning("dropbox_token_exchange_failed", extra={"error": message})
            raise PermanentError(message, details={"error": body["error"]})
        try:
            token = DropboxToken.model_validate(body)
        except PydanticValidationError as exc:
            raise MalformedResponseError("token response is missing fields") from exc
        logger.info("dropbox_token_exchanged", extra={"uid": token.uid})
        return token

    async def account_info(self, access_token: str) -> DropboxAccount:
        """Fetch account info; success requires HTTP 200 and a ``uid``."""
        response = await self.client.get(
            f"{self.api_url}/account/info",
            headers=self._bearer(access_token),
            timeout=self.get_timeout("account_info"),
        )
        body = _decode_json(response, "account_info")
        if response.status_code == 200 and isinstance(body, dict) and "uid" in body:
            return DropboxAccount.model_validate(body)
        if isinstance(body, dict) and "error" in body:
            raise PermanentError(str(body["error"]), details={"status_code": response.status_code})
        raise PermanentError(
            f"account info request failed with HTTP {response.status_code}",
            details={"status_code": response.status_code},
        )

    async def is_app_installed(self, access_token: str) -> bool:
        """Return False when the token no longer authorizes the app."""
        try:
            await self.account_info(access_token)
        except PermanentError as exc:
            logger.info("dropbox_app_not_installed", extra={"error": exc.message})
            return False
        return True

    async def save_url(self, job: SyncJob) -> JobPending:
        """Submit one save_url job; a single attempt with no retry.

        Raises:
            InvalidJobError: The job fails input validation.
            TransientLockError: Dropbox reported lock contention.
            PermanentError: Any other Dropbox error.
            MalformedResponseError: The body is not a JSON object.
        """
        validate_job(job)
        response = await self.client.post(
            f"{self.api_url}/save_url/auto/{quote(job.path, safe=_PATH_SAFE_CHARS)}",
            params={"url": job.source_url},
            headers=self._bearer(job.access_token),
            timeout=self.get_timeout("save_url"),
        )
        result = classify_save_url_body(_decode_json(response, "save_url"))
        logger.debug(
            "dropbox_save_url_pending",
            extra={"job_id": result.job_id, "path": job.path, "retry_count": job.retry_count},
        )
        return result

    async def save_url_with_retry(self, job: SyncJob) -> JobPending:
        """:meth:`save_url` under the lock-contention retry policy."""
        return await submit_with_retry(
            self, job, max_retries=self.max_retries, delay_step=self.retry_delay
        )
