import asyncio
import logging
import os
import stat
import sys
from typing import BinaryIO, Optional, TextIO

from planwatch.runtime.exceptions import LineSourceError

logger = logging.getLogger(__name__)

# Diagnostics with snippets and large outputs easily exceed asyncio's 64 KiB default
LINE_LIMIT = 16 * 1024 * 1024


class StreamLineSource:
    """
    Base for line sources over a byte stream.

    Every line read is echoed verbatim to `tee` when one is given. Blank lines
    are skipped, so the decoder only ever sees candidate records.
    """

    def __init__(self, tee: Optional[TextIO] = None):
        self._tee = tee

    async def _read_raw(self) -> bytes:
        raise NotImplementedError

    async def readline(self) -> Optional[str]:
        while True:
            try:
                raw = await self._read_raw()
            except (OSError, ValueError) as e:
                raise LineSourceError(f"Failed to read from stream: {e}") from e

            if not raw:
                return None

            try:
                text = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise LineSourceError(f"Stream is not valid UTF-8: {e}") from e

            if self._tee is not None:
                try:
                    self._tee.write(text)
                    self._tee.flush()
                except (OSError, ValueError) as e:
                    raise LineSourceError(f"Failed to copy line to tee: {e}") from e

            line = text.rstrip("\r\n")
            if line.strip():
                return line
            logger.debug("Skipping blank line")

    def close(self):
        pass


class PipeLineSource(StreamLineSource):
    """Reads a pipe or terminal without blocking the event loop."""

    def __init__(self, reader: asyncio.StreamReader, tee: Optional[TextIO] = None):
        super().__init__(tee=tee)
        self._reader = reader

    @classmethod
    async def connect(cls, pipe: BinaryIO, tee: Optional[TextIO] = None) -> "PipeLineSource":
        loop = asyncio.get_running_loop()
        reader = asyncio.StreamReader(limit=LINE_LIMIT)
        await loop.connect_read_pipe(lambda: asyncio.StreamReaderProtocol(reader), pipe)
        return cls(reader, tee=tee)

    async def _read_raw(self) -> bytes:
        return await self._reader.readline()


class FileLineSource(StreamLineSource):
    """Reads a regular file (or any blocking binary stream) in a worker thread."""

    def __init__(
        self,
        stream: BinaryIO,
        tee: Optional[TextIO] = None,
        owns_stream: bool = False,
    ):
        super().__init__(tee=tee)
        self._stream = stream
        self._owns_stream = owns_stream

    async def _read_raw(self) -> bytes:
        return await asyncio.to_thread(self._stream.readline)

    def close(self):
        if self._owns_stream:
            self._stream.close()


def _is_pollable(stream: BinaryIO) -> bool:
    try:
        mode = os.fstat(stream.fileno()).st_mode
    except (OSError, ValueError):
        return False
    return stat.S_ISFIFO(mode) or stat.S_ISCHR(mode) or stat.S_ISSOCK(mode)


async def open_line_source(
    path: Optional[str] = None, tee: Optional[TextIO] = None
) -> StreamLineSource:
    """Opens `path`, or stdin when no path (or '-') is given."""
    if path and path != "-":
        try:
            stream = open(path, "rb")
        except OSError as e:
            raise LineSourceError(f"Cannot open {path}: {e}") from e
        return FileLineSource(stream, tee=tee, owns_stream=True)

    stdin = sys.stdin.buffer
    if _is_pollable(stdin):
        return await PipeLineSource.connect(stdin, tee=tee)
    return FileLineSource(stdin, tee=tee)
