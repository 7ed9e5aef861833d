"""
Delivery ports for shipping encrypted records to the ingestion API.

The pipeline only depends on the DeliveryPort protocol. HttpDeliveryPort is
the aiohttp implementation; it surfaces every failure as a DeliveryError
carrying an ErrorKind so the retry strategy can classify it.
"""

import asyncio
import json
from typing import Any, Dict, Optional, Protocol, runtime_checkable

import aiohttp
import structlog

from ..config import ServerSettings
from ..models.log_entry import LogRecord
from ..models.stats import IngestResponse
from .exceptions import DeliveryError, ErrorKind

logger = structlog.get_logger(__name__)

USER_AGENT = "logflux-python/0.1.0"


@runtime_checkable
class DeliveryPort(Protocol):
    """Transport that ships one record; must be safe for concurrent use."""

    async def send(self, record: LogRecord) -> IngestResponse:
        ...

    async def close(self) -> None:
        ...


class HttpDeliveryPort:
    """
    Ships records to ``{server_url}/v1/ingest`` over HTTP.

    One ClientSession is shared by all workers; it is opened lazily on the
    first request so the port can be built outside a running loop.
    """

    def __init__(self, settings: ServerSettings) -> None:
        self.settings = settings
        self.session: Optional[aiohttp.ClientSession] = None
        self._session_lock: Optional[asyncio.Lock] = None

        logger.info(
            "HTTP delivery port initialized",
            ingest_url=settings.ingest_url,
            api_key=settings.masked_api_key,
        )

    async def _get_session(self) -> aiohttp.ClientSession:
        if self.session is not None and not self.session.closed:
            return self.session

        if self._session_lock is None:
            self._session_lock = asyncio.Lock()

        async with self._session_lock:
            if self.session is None or self.session.closed:
                self.session = aiohttp.ClientSession(
                    timeout=aiohttp.ClientTimeout(total=self.settings.timeout_seconds),
                    headers={"User-Agent": USER_AGENT},
                )
        return self.session

    async def send(self, record: LogRecord) -> IngestResponse:
        """POST one record; raises DeliveryError on any failure."""
        headers = {
            "Authorization": f"Bearer {self.settings.api_key}",
            "Content-Type": "application/json",
        }
        body = await self._request("POST", self.settings.ingest_url, json=record.to_wire(), headers=headers)

        try:
            payload = json.loads(body) if body.strip() else {}
            response = IngestResponse.from_payload(payload)
        except (ValueError, TypeError) as e:
            raise DeliveryError(
                "Invalid response from ingestion endpoint",
                kind=ErrorKind.VALIDATION,
                details={"error": str(e)},
            ) from e

        logger.debug("Entry delivered", entry_id=response.id, status=response.status)
        return response

    async def health(self) -> str:
        """Return the body of ``GET /health``."""
        body = await self._request("GET", f"{self.settings.server_url}/health")
        return body.strip()

    async def version(self) -> Dict[str, Any]:
        """Return the decoded body of ``GET /version``."""
        body = await self._request("GET", f"{self.settings.server_url}/version")
        try:
            return json.loads(body)
        except ValueError as e:
            raise DeliveryError("Invalid version response", kind=ErrorKind.VALIDATION) from e

    async def close(self) -> None:
        if self.session is not None:
            await self.session.close()
            self.session = None
        logger.info("HTTP delivery port closed")

    async def _request(self, method: str, url: str, **kwargs: Any) -> str:
        session = await self._get_session()
        try:
            async with session.request(method, url, **kwargs) as response:
                text = await response.text()
                if response.status in (200, 201):
                    return text

                logger.warning(
                    "Ingestion endpoint returned error",
                    method=method,
                    url=url,
                    status=response.status,
                )
                raise DeliveryError.from_status(response.status, text[:512])

        except asyncio.TimeoutError as e:
            raise DeliveryError(
                f"Request timeout after {self.settings.timeout_seconds}s",
                kind=ErrorKind.TIMEOUT,
            ) from e
        except aiohttp.ClientConnectionError as e:
            raise DeliveryError(
                f"Connection failed: {e}",
                kind=ErrorKind.NETWORK,
            ) from e
        except aiohttp.ClientError as e:
            raise DeliveryError(
                f"HTTP client error: {e}",
                kind=ErrorKind.UNKNOWN,
            ) from e
