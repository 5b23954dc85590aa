"""
streamnorm - Frame Reader

Reads raw byte fragments from the transport and yields complete lines.

- UTF-8 is decoded incrementally, so a multi-byte character split
  across fragments comes out whole
- CRLF is normalized to LF
- the trailing partial line is carried over to the next fragment
"""

import asyncio
import codecs
from typing import Any, AsyncIterable, AsyncIterator, Callable, List, Optional, Union

from ..core.errors import StreamCancelledError, wrap_transport_error
from ..observability.logging import get_logger
from .session import CancellationToken

logger = get_logger(__name__)


class FrameReader:
    """
    Async line reader over a byte source.

    The source is any async iterable of bytes (str fragments are accepted
    as-is). If it has an `aclose()` coroutine, it is called when the
    reader stops early or is cancelled. Cancelling the token interrupts
    a read that is still waiting on the source.
    """

    def __init__(
        self,
        source: AsyncIterable[Union[bytes, str]],
        cancel_token: CancellationToken,
        should_stop: Callable[[], bool] = lambda: False,
        session_id: str = "",
        request_id: str = "",
        encoding: str = "utf-8",
    ):
        self.source = source
        self.cancel_token = cancel_token
        self.should_stop = should_stop
        self.session_id = session_id
        self.request_id = request_id

        self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        self._carry_parts: List[str] = []
        self._pending_cr = False
        self._pending_read: Optional[asyncio.Future] = None
        self._closed = False

        self.fragments_read = 0
        self.bytes_read = 0
        self.stopped_early = False

    @property
    def remainder(self) -> str:
        """Unterminated trailing line, meaningful once the stream ended."""
        return "".join(self._carry_parts) + ("\r" if self._pending_cr else "")

    async def frames(self) -> AsyncIterator[List[str]]:
        """Yield the complete lines of each fragment."""
        iterator = self.source.__aiter__()
        self.cancel_token.on_cancel(self._interrupt_read)

        while True:
            await self._check_cancelled()
            self._pending_read = asyncio.ensure_future(iterator.__anext__())
            try:
                chunk = await self._pending_read
            except StopAsyncIteration:
                break
            except asyncio.CancelledError:
                if self.cancel_token.is_cancellation_requested:
                    await self._check_cancelled()
                raise
            except StreamCancelledError:
                raise
            except Exception as e:
                raise wrap_transport_error(e, self.session_id, self.request_id) from e
            finally:
                self._pending_read = None
            await self._check_cancelled()

            self.fragments_read += 1
            lines = self._split(chunk)
            if lines:
                yield lines

            if self.should_stop():
                self.stopped_early = True
                logger.debug(
                    "Stopping read early",
                    fragments_read=self.fragments_read,
                    bytes_read=self.bytes_read,
                )
                await self.close()
                return

        tail = self._decoder.decode(b"", final=True)
        if tail:
            lines = self._push(tail)
            if lines:
                yield lines

    async def close(self):
        """Release the source. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        aclose = getattr(self.source, "aclose", None)
        if aclose is not None:
            await aclose()

    def _interrupt_read(self):
        # Runs from CancellationToken.cancel(), possibly while a read blocks
        if self._pending_read is not None and not self._pending_read.done():
            self._pending_read.cancel()

    async def _check_cancelled(self):
        if self.cancel_token.is_cancellation_requested:
            logger.debug("Read cancelled", fragments_read=self.fragments_read)
            await self.close()
            raise StreamCancelledError(self.session_id, self.request_id)

    def _split(self, chunk: Any) -> List[str]:
        if isinstance(chunk, str):
            text = chunk
        else:
            self.bytes_read += len(chunk)
            text = self._decoder.decode(bytes(chunk))
        return self._push(text)

    def _push(self, text: str) -> List[str]:
        # Only the new text is scanned; a trailing CR waits for the next
        # fragment in case it starts with LF.
        if self._pending_cr:
            text = "\r" + text
            self._pending_cr = False
        if text.endswith("\r"):
            text = text[:-1]
            self._pending_cr = True
        text = text.replace("\r\n", "\n")

        if "\n" not in text:
            if text:
                self._carry_parts.append(text)
            return []

        first, *lines, last = text.split("\n")
        lines.insert(0, "".join(self._carry_parts) + first)
        self._carry_parts = [last] if last else []
        return lines
