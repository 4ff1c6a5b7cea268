from __future__ import annotations

import errno
from io import BytesIO
from typing import TYPE_CHECKING

from multipart_save.fields import End, Entry, EntryError, FieldHeaders, MultipartField
from multipart_save.streams import BufferedBody

if TYPE_CHECKING:
    from typing import Any


class ChunkedReader:
    """Returns at most ``chunk_size`` bytes per read, so buffers refill often."""

    def __init__(self, data: bytes, chunk_size: int = 3) -> None:
        self.stream = BytesIO(data)
        self.chunk_size = chunk_size

    def read(self, n: int = -1) -> bytes:
        if n < 0 or n > self.chunk_size:
            n = self.chunk_size
        return self.stream.read(n)


class InterruptingReader(ChunkedReader):
    """Raises InterruptedError on every other read."""

    def __init__(self, data: bytes, chunk_size: int = 3) -> None:
        super().__init__(data, chunk_size)
        self.interrupts = 0
        self._flip = False

    def read(self, n: int = -1) -> bytes:
        self._flip = not self._flip
        if self._flip:
            self.interrupts += 1
            raise InterruptedError(errno.EINTR, "interrupted")
        return super().read(n)


class FailingReader(ChunkedReader):
    """Fails with an OSError once ``fail_after`` bytes have been read."""

    def __init__(self, data: bytes, fail_after: int, chunk_size: int = 3) -> None:
        super().__init__(data, chunk_size)
        self.fail_after = fail_after
        self.error = OSError(errno.ECONNRESET, "connection reset")

    def read(self, n: int = -1) -> bytes:
        if self.stream.tell() >= self.fail_after:
            raise self.error
        if n < 0 or n > self.chunk_size:
            n = self.chunk_size
        n = min(n, self.fail_after - self.stream.tell())
        return self.stream.read(n)


class RecordingWriter:
    """Accepts at most ``max_write`` bytes per call."""

    def __init__(self, max_write: int | None = None) -> None:
        self.data = bytearray()
        self.max_write = max_write
        self.calls = 0

    def write(self, data: Any) -> int:
        self.calls += 1
        data = bytes(data)
        if self.max_write is not None:
            data = data[: self.max_write]
        self.data += data
        return len(data)


class InterruptingWriter(RecordingWriter):
    def __init__(self) -> None:
        super().__init__(max_write=2)
        self.interrupts = 0

    def write(self, data: Any) -> int:
        if self.interrupts <= self.calls:
            self.interrupts += 1
            raise InterruptedError(errno.EINTR, "interrupted")
        return super().write(data)


class ZeroWriter(RecordingWriter):
    """Accepts ``accept`` bytes, then reports zero bytes written."""

    def __init__(self, accept: int = 0) -> None:
        super().__init__()
        self.accept = accept

    def write(self, data: Any) -> int:
        data = bytes(data)[: self.accept - len(self.data)]
        self.data += data
        return len(data)


class FailingWriter(RecordingWriter):
    """Accepts ``accept`` bytes, then fails with ENOSPC."""

    def __init__(self, accept: int = 0) -> None:
        super().__init__()
        self.accept = accept
        self.error = OSError(errno.ENOSPC, "no space left on device")

    def write(self, data: Any) -> int:
        room = self.accept - len(self.data)
        if room <= 0:
            raise self.error
        data = bytes(data)[:room]
        self.data += data
        return len(data)


class ScriptedSource:
    """A field source that replays ``(name, payload)`` pairs, where a payload
    is ``str`` for a text field, ``bytes`` for a file field, or an OSError to
    report from ``read_entry()``.
    """

    def __init__(self, items: list[tuple[str, Any]], buffer_size: int = 7) -> None:
        self.items = list(items)
        self.buffer_size = buffer_size
        self.reads = 0

    def read_entry(self) -> Entry | End | EntryError:
        self.reads += 1
        if not self.items:
            return End()

        name, payload = self.items.pop(0)
        if isinstance(payload, OSError):
            return EntryError(payload)
        if isinstance(payload, str):
            return Entry(MultipartField(FieldHeaders(name), self, text=payload))

        headers = FieldHeaders(name, filename=name + ".bin", content_type="application/octet-stream")
        if isinstance(payload, bytes):
            payload = BytesIO(payload)
        body = BufferedBody(payload, buffer_size=self.buffer_size)
        return Entry(MultipartField(headers, self, body=body))
