import logging
from typing import Any, BinaryIO, Iterator, Optional

import fsspec

from .config import DEFAULT_CHUNK_SIZE
from .exceptions import SourceReadError

logger = logging.getLogger("backup_service")


class ChunkedSource:
    """Forward-only reader that splits a binary handle into fixed-size chunks.

    Every chunk is exactly ``chunk_size`` bytes except the last one. An empty
    chunk means the data is exhausted. The source cannot be rewound; after
    exhaustion it keeps returning empty chunks and after a read failure it
    keeps raising :class:`SourceReadError`.
    """

    def __init__(
        self,
        source: BinaryIO,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        owns_source: bool = False,
    ) -> None:
        if chunk_size < 1:
            raise ValueError("Chunk size must be positive")
        self.source = source
        self.chunk_size = chunk_size
        self.owns_source = owns_source
        self.bytes_read = 0
        self._exhausted = False
        self._failed = False

    @classmethod
    def open(
        cls, path: str, chunk_size: int = DEFAULT_CHUNK_SIZE, protocol: str = "file"
    ) -> "ChunkedSource":
        """Open ``path`` through fsspec and return a source owning the handle."""
        try:
            filesystem = fsspec.filesystem(protocol)
            fobj: Any = filesystem.open(path=path, mode="rb")
        except (OSError, ValueError) as exception:
            logger.exception("Failed to open backup source", extra={"path": path})
            raise SourceReadError(f"Cannot open backup source {path!r}") from exception
        logger.debug("Opened backup source", extra={"path": path})
        return cls(fobj, chunk_size=chunk_size, owns_source=True)

    def next_chunk(self) -> bytes:
        if self._failed:
            raise SourceReadError("Backup source failed earlier and cannot be read")
        if self._exhausted:
            return b""

        buffer = bytearray()
        while len(buffer) < self.chunk_size:
            try:
                data: Optional[bytes] = self.source.read(self.chunk_size - len(buffer))
            except (OSError, ValueError) as exception:
                self._failed = True
                logger.exception(
                    "Failed to read backup source",
                    extra={"bytes_read": self.bytes_read + len(buffer)},
                )
                raise SourceReadError("Cannot read backup source") from exception
            if not data:
                self._exhausted = True
                break
            buffer.extend(data)

        self.bytes_read += len(buffer)
        return bytes(buffer)

    def __iter__(self) -> Iterator[bytes]:
        while True:
            chunk = self.next_chunk()
            if not chunk:
                return
            yield chunk

    def close(self) -> None:
        if self.owns_source:
            self.source.close()

    def __enter__(self) -> "ChunkedSource":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()
