import asyncio
import json
from typing import Any, Mapping, Optional, Union

import aiohttp
from loguru import logger
from pydantic import BaseModel

USER_AGENT = "embr-action"


class TransportOk(BaseModel):
    status_code: int
    body: Any = None

    @property
    def ok(self) -> bool:
        return True


class HttpError(BaseModel):
    status_code: int
    body: str = ""

    @property
    def ok(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"HTTP error {self.status_code}: {self.body}"


class NetworkError(BaseModel):
    message: str

    @property
    def ok(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"Network error: {self.message}"


TransportOutcome = Union[TransportOk, HttpError, NetworkError]


def _decode_body(text: str) -> Any:
    """Decode a JSON body, falling back to the raw text when it is not JSON"""
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return text


class Transport:
    """Single HTTP requests against the Embr API, normalized into outcomes.

    No retries happen here; callers decide what a failed outcome means.
    """

    def __init__(self, session: aiohttp.ClientSession):
        self.session = session
        self.logger = logger

    async def send(
        self,
        method: str,
        url: str,
        *,
        json_body: Any = None,
        data: Optional[bytes] = None,
        headers: Optional[Mapping[str, str]] = None,
        timeout_ms: int,
    ) -> TransportOutcome:
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be > 0")

        request_headers = {"User-Agent": USER_AGENT}
        request_headers.update(headers or {})
        if json_body is not None:
            data = json.dumps(json_body).encode("utf-8")
            request_headers.setdefault("Content-Type", "application/json")

        timeout = aiohttp.ClientTimeout(total=timeout_ms / 1000)
        try:
            async with self.session.request(
                method, url, data=data, headers=request_headers, timeout=timeout
            ) as response:
                text = (await response.read()).decode("utf-8", errors="replace")
                if 200 <= response.status < 300:
                    return TransportOk(
                        status_code=response.status, body=_decode_body(text)
                    )
                self.logger.debug(f"HTTP error {response.status} at {url}: {text}")
                return HttpError(status_code=response.status, body=text)
        except asyncio.TimeoutError:
            self.logger.debug(f"Request to {url} timed out after {timeout_ms}ms")
            return NetworkError(message=f"timed out after {timeout_ms}ms")
        except aiohttp.ClientError as e:
            self.logger.debug(f"No response received from {url}: {e}")
            return NetworkError(message=str(e) or type(e).__name__)
