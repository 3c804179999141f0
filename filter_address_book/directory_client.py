"""Async HTTP client for the filterctld directory service."""

from __future__ import annotations

import json
from urllib.parse import quote

import httpx
import structlog
from pydantic import ValidationError

from .config import DirectoryConfig
from .errors import DecodeError, DirectoryScanFailed, RemoteError, TransportError
from .models import ScanResponse

logger = structlog.get_logger()

CLIENT_CERT_HEADER = "X-Client-Cert-Dn"


def format_if_json(body: bytes) -> str:
    """Pretty-print *body* if it parses as a JSON object, else return it as text."""
    if not body:
        return ""
    text = body.decode("utf-8", errors="replace")
    try:
        decoded = json.loads(text)
    except ValueError:
        return text
    if not isinstance(decoded, dict):
        return text
    return json.dumps(decoded, indent=2)


class DirectoryClient:
    """Scans a recipient's address books for a sender address.

    Each request carries the ``X-Client-Cert-Dn`` identity header: the
    filter talks to filterctld on localhost directly, bypassing the
    reverse proxy that would normally derive it from the client
    certificate.

    The underlying :class:`httpx.AsyncClient` is opened on first use and
    released by :meth:`aclose`.  Nothing is retried here.
    """

    def __init__(self, config: DirectoryConfig) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None
        self._closed = False

    async def __aenter__(self) -> DirectoryClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def closed(self) -> bool:
        return self._closed

    def _http(self) -> httpx.AsyncClient:
        if self._closed:
            raise RuntimeError("DirectoryClient is closed")
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.url,
                timeout=httpx.Timeout(self._config.timeout_seconds),
                headers={CLIENT_CERT_HEADER: self._config.client_cert_dn},
            )
        return self._client

    async def aclose(self) -> None:
        self._closed = True
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def scan(self, recipient_mailbox: str, sender_address: str) -> list[str]:
        """Return the sorted names of *recipient_mailbox*'s books containing *sender_address*.

        An empty list means the sender is not in any book.  Raises a
        :class:`~filter_address_book.errors.DirectoryError` subclass on
        failure.
        """
        path = f"/scan/{quote(recipient_mailbox, safe='@+')}/{quote(sender_address, safe='@+')}/"
        body = await self._get(path)
        if not body:
            return []

        try:
            response = ScanResponse.model_validate_json(body)
        except ValidationError as exc:
            raise DecodeError(str(exc), body.decode("utf-8", errors="replace")) from exc

        if not response.success:
            raise DirectoryScanFailed(response.message)

        books = sorted(set(response.books))
        logger.debug(
            "directory_scan_complete",
            recipient=recipient_mailbox,
            sender=sender_address,
            books=books,
        )
        return books

    async def _get(self, path: str) -> bytes:
        try:
            response = await self._http().get(path)
        except httpx.TransportError as exc:
            raise TransportError("GET", path, exc) from exc

        if not response.is_success:
            status = f"{response.status_code} {response.reason_phrase}".strip()
            raise RemoteError("GET", path, status, format_if_json(response.content))
        return response.content
