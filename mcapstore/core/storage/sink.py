"""
Buffered file sink the MCAP writer streams into.

Bytes accumulate in memory until the buffer capacity would be exceeded, then
they are handed to the OS in one write. An unbounded sink only writes on an
explicit flush(), which lets a whole batch of messages land at once.
"""

import io
import os
from pathlib import Path
from typing import Optional

from mcapstore.utils.logging import get_logger

logger = get_logger(__name__)


class BufferedSink(io.BufferedIOBase):
    """
    Append-only file sink with a bounded (or unbounded) write buffer.

    The sink is itself the buffering layer, so the codec writes to it directly.

    Attributes:
        path: Path of the output file, set by open()
        capacity: Buffer size in bytes, or None for unbounded
    """

    def __init__(self):
        super().__init__()
        self.path: Optional[Path] = None
        self.capacity: Optional[int] = None
        self._fd: Optional[int] = None
        self._buffer = bytearray()
        self._size: int = 0

    def open(self, path: Path, capacity: Optional[int] = None) -> bool:
        """
        Open the output file, truncating any previous content.

        Args:
            path: File to write
            capacity: Buffer size in bytes (None = buffer until flush)

        Returns:
            True if the file was opened
        """
        if capacity is not None and capacity < 0:
            raise ValueError(f"Buffer capacity must be non-negative, got {capacity}")

        flags = os.O_WRONLY | os.O_CREAT | os.O_TRUNC
        mode = 0o644

        try:
            self._fd = os.open(path, flags, mode)
        except OSError as e:
            logger.error("Could not open sink", path=str(path), error=str(e))
            return False

        self.path = Path(path)
        self.capacity = capacity
        self._buffer.clear()
        self._size = 0

        logger.debug("Opened sink", path=str(path), capacity=capacity)
        return True

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        """
        Buffer bytes, spilling to the file when the buffer is full.

        Args:
            data: Bytes to append

        Returns:
            Number of bytes accepted

        Raises:
            ValueError: If the sink is closed
        """
        if self._fd is None:
            raise ValueError("Cannot write to closed sink")

        length = len(data)

        if self.capacity is not None and len(self._buffer) + length > self.capacity:
            self._drain()
            if length > self.capacity:
                self._write_fully(bytes(data))
                self._size += length
                return length

        self._buffer += data
        self._size += length
        return length

    def tell(self) -> int:
        return self._size

    def size(self) -> int:
        """
        Get the number of bytes written so far, buffered bytes included.

        Returns:
            Size in bytes
        """
        return self._size

    def _write_fully(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            bytes_written = os.write(self._fd, view)
            view = view[bytes_written:]

    def _drain(self) -> None:
        if self._buffer:
            self._write_fully(bytes(self._buffer))
            self._buffer.clear()

    def flush(self) -> None:
        """Hand all buffered bytes to the OS."""
        if self._fd is not None:
            self._drain()

    def sync_to_disk(self) -> bool:
        """
        Flush the buffer and fsync the file.

        Returns:
            True if the data reached stable storage
        """
        if self._fd is None:
            return False

        try:
            self._drain()
            os.fsync(self._fd)
        except OSError as e:
            logger.error("Sync to disk failed", path=str(self.path), error=str(e))
            return False

        return True

    def close(self) -> None:
        """Flush and close the file."""
        if self._fd is not None:
            try:
                self._drain()
            finally:
                os.close(self._fd)
                self._fd = None
                logger.debug("Closed sink", path=str(self.path), size=self._size)
        super().close()

    def __repr__(self) -> str:
        """String representation."""
        return (
            f"BufferedSink(path={self.path}, "
            f"capacity={self.capacity}, "
            f"size={self._size})"
        )
