from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .exceptions import ShortWriteError
from .result import SIZE_LIMIT, Error, Full, Partial, PartialReason

if TYPE_CHECKING:  # pragma: no cover
    from typing import Protocol

    from .result import SaveResult

    class SupportsRead(Protocol):
        def read(self, __n: int) -> bytes: ...

    class SupportsWrite(Protocol):
        def write(self, __b: bytes | memoryview) -> int | None: ...

    class BufferedSource(Protocol):
        """A stream with buffered-read semantics: the internal buffer can be
        filled and inspected without consuming it.
        """

        def fill_buf(self) -> bytes: ...
        def consume(self, __n: int) -> None: ...


# Get logger for this module.
logger = logging.getLogger(__name__)

#: The number of bytes requested from the raw stream per refill.
DEFAULT_BUFFER_SIZE = 64 * 1024


class BufferedBody:
    """This class wraps any object with a ``read(n)`` method and gives it
    buffered-read semantics, like :class:`io.BufferedReader` but with an
    explicit split between looking at buffered data and consuming it::

        body = BufferedBody(request.stream)
        chunk = body.fill_buf()     # nothing consumed yet
        body.consume(len(chunk))    # now it is

    :meth:`fill_buf` returns an empty bytes object only at the end of the
    stream.

    :param raw: the underlying readable object
    :param buffer_size: how many bytes to request from ``raw`` per refill
    """

    def __init__(self, raw: SupportsRead, buffer_size: int = DEFAULT_BUFFER_SIZE) -> None:
        if buffer_size < 1:
            raise ValueError("buffer_size must be a positive number, not %r" % buffer_size)
        self._raw = raw
        self._buf = b""
        self._pos = 0
        self.buffer_size = buffer_size

    @property
    def raw(self) -> SupportsRead:
        """The underlying readable object."""
        return self._raw

    def fill_buf(self) -> bytes:
        if self._pos >= len(self._buf):
            data = self._raw.read(self.buffer_size)
            self._buf = bytes(data) if data else b""
            self._pos = 0
        return self._buf[self._pos :]

    def consume(self, n: int) -> None:
        self._pos = min(self._pos + n, len(self._buf))

    def read(self, size: int = -1) -> bytes:
        """Read and consume up to ``size`` bytes, or everything that is left
        if ``size`` is negative.
        """
        chunks: list[bytes] = []
        remaining = size
        while size < 0 or remaining > 0:
            buf = self.fill_buf()
            if not buf:
                break
            if size >= 0:
                buf = buf[:remaining]
                remaining -= len(buf)
            self.consume(len(buf))
            chunks.append(buf)
        return b"".join(chunks)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(raw={self._raw!r}, buffer_size={self.buffer_size!r})"


def as_buffered(stream: BufferedSource | SupportsRead) -> BufferedSource:
    """Return ``stream`` unchanged if it already has buffered-read semantics,
    otherwise wrap it in a :class:`BufferedBody`.
    """
    if hasattr(stream, "fill_buf") and hasattr(stream, "consume"):
        return stream  # type: ignore[return-value]
    return BufferedBody(stream)  # type: ignore[arg-type]


class _Take:
    # Limits the bytes visible through fill_buf() without touching the rest
    # of the underlying buffer.
    def __init__(self, src: BufferedSource, limit: int) -> None:
        self.src = src
        self.remaining = limit

    def fill_buf(self) -> bytes:
        if self.remaining <= 0:
            return b""
        return self.src.fill_buf()[: self.remaining]

    def consume(self, n: int) -> None:
        n = min(n, self.remaining)
        self.src.consume(n)
        self.remaining -= n


def _failed(copied: int, error: OSError) -> SaveResult[int, int]:
    if copied == 0:
        return Error(error)
    return Partial(copied, PartialReason.io_error(error))


def write_all(buf: bytes, dest: SupportsWrite) -> SaveResult[int, int]:
    """Write all of ``buf`` to ``dest``.

    Interrupted writes are retried and short writes are re-issued with the
    remaining data.  A write that accepts zero bytes fails with
    :class:`~multipart_save.exceptions.ShortWriteError`.

    Returns ``Full(len(buf))``, ``Partial(written, IO_ERROR)`` if a failure
    happened after some bytes were accepted, or ``Error`` if none were.
    """
    view = memoryview(buf)
    total = 0
    while total < len(view):
        try:
            written = dest.write(view[total:])
        except InterruptedError:
            continue
        except OSError as e:
            return _failed(total, e)

        if not written:
            return _failed(total, ShortWriteError())
        total += written

    return Full(total)


def copy_buf(src: BufferedSource, dest: SupportsWrite) -> SaveResult[int, int]:
    """Copy everything from ``src`` to ``dest``.

    Each chunk is written fully before it is consumed from ``src``, so the
    returned count is exactly the number of bytes that reached ``dest``, even
    on failure.
    """
    total = 0
    while True:
        try:
            buf = src.fill_buf()
        except InterruptedError:
            continue
        except OSError as e:
            return _failed(total, e)

        if not buf:
            break

        res = write_all(buf, dest)
        if isinstance(res, Full):
            src.consume(res.value)
            total += res.value
        elif isinstance(res, Partial):
            src.consume(res.partial)
            total += res.partial
            return Partial(total, res.reason)
        else:
            assert isinstance(res, Error)
            return _failed(total, res.error)

    return Full(total)


def copy_limited(src: BufferedSource, dest: SupportsWrite, limit: int) -> SaveResult[int, int]:
    """Copy at most ``limit`` bytes from ``src`` to ``dest``.

    Once the limit is reached, ``src`` is checked for more data without
    consuming it: if the stream ended exactly at the limit the result is
    ``Full``, otherwise ``Partial(copied, SIZE_LIMIT)``.
    """
    res = copy_buf(_Take(src, limit), dest)
    if not isinstance(res, Full):
        return res

    copied = res.value
    while True:
        try:
            more = src.fill_buf()
        except InterruptedError:
            continue
        except OSError as e:
            return Partial(copied, PartialReason.io_error(e))
        break

    if more:
        logger.debug("Size limit of %d bytes reached with data remaining", limit)
        return Partial(copied, SIZE_LIMIT)
    return Full(copied)
