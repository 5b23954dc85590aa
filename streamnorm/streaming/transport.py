"""
streamnorm - httpx Transport Seam

Adapts an httpx streaming response into the byte source the
normalizer reads. Opening the request, status handling and retries stay
with the caller.

Usage:
    async with httpx.AsyncClient() as client:
        async with client.stream("POST", url, json=body) as response:
            response.raise_for_status()
            await normalize_response(response, sink)
"""

from typing import AsyncIterator, Optional

import httpx

from ..core.config import NormalizerConfig
from ..core.errors import ResponseBodyConsumedError
from ..core.models import EventSink
from .normalizer import SessionResult, StreamNormalizer
from .session import CancellationToken

REQUEST_ID_HEADER = "x-request-id"


class HttpxByteSource:
    """
    Byte source over an httpx.Response.

    Iterates the decoded body (content-encoding undone) and closes the
    response when the reader stops early or is cancelled.
    """

    def __init__(self, response: httpx.Response, chunk_size: Optional[int] = None):
        self.response = response
        self.chunk_size = chunk_size

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self.response.aiter_bytes(self.chunk_size)

    async def aclose(self):
        await self.response.aclose()


def _ensure_readable(response: httpx.Response, request_id: str):
    if not response.is_stream_consumed:
        return
    # A fully read body can still be replayed from memory
    try:
        response.content
    except httpx.ResponseNotRead:
        raise ResponseBodyConsumedError(request_id)


async def normalize_response(
    response: httpx.Response,
    sink: EventSink,
    config: Optional[NormalizerConfig] = None,
    cancel_token: Optional[CancellationToken] = None,
    request_id: Optional[str] = None,
    normalizer: Optional[StreamNormalizer] = None,
) -> SessionResult:
    """
    Normalize an httpx streaming response into content events.

    The request id defaults to the response's x-request-id header.

    Raises:
        ResponseBodyConsumedError: the body was already streamed elsewhere
    """
    if request_id is None:
        request_id = response.headers.get(REQUEST_ID_HEADER, "")

    _ensure_readable(response, request_id)

    normalizer = normalizer or StreamNormalizer(config)
    return await normalizer.process_stream(
        HttpxByteSource(response),
        sink,
        cancel_token=cancel_token,
        request_id=request_id,
    )
