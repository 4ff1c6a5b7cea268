from __future__ import annotations

import logging
import os
import shutil
import tempfile
import weakref
from enum import IntEnum
from io import BytesIO
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterator
    from types import TracebackType
    from typing import BinaryIO

    from .fields import FieldHeaders, MultipartField

# Get logger for this module.
logger = logging.getLogger(__name__)

#: The prefix of temporary save directories created by this package.
DEFAULT_TEMP_PREFIX = "multipart-save"


class DataKind(IntEnum):
    TEXT = 0
    BYTES = 1
    FILE = 2


class SavedData:
    """The saved content of one field, which may reside in memory (as text or
    bytes) or on the filesystem.  Use the ``from_*`` constructors.
    """

    def __init__(self, kind: DataKind, value: str | bytes, size: int) -> None:
        self.kind = kind
        self.value = value
        self._size = size

    @classmethod
    def from_text(cls, text: str) -> SavedData:
        return cls(DataKind.TEXT, text, len(text.encode("utf-8")))

    @classmethod
    def from_bytes(cls, data: bytes) -> SavedData:
        return cls(DataKind.BYTES, bytes(data), len(data))

    @classmethod
    def from_file(cls, path: str | os.PathLike[str], size: int) -> SavedData:
        """A path to a file on the filesystem and its size as written."""
        return cls(DataKind.FILE, os.fspath(path), size)

    @property
    def size(self) -> int:
        """The size of the content in bytes (UTF-8 encoded for text)."""
        return self._size

    @property
    def path(self) -> str | None:
        """The file path for saved files, ``None`` for in-memory data."""
        if self.kind == DataKind.FILE:
            return self.value  # type: ignore[return-value]
        return None

    @property
    def in_memory(self) -> bool:
        return self.kind != DataKind.FILE

    def readable(self) -> BinaryIO:
        """Open the content for reading.  Saved files are re-opened from
        disk, so this may raise :class:`OSError`.  The caller closes the
        returned object.
        """
        if self.kind == DataKind.TEXT:
            return BytesIO(self.value.encode("utf-8"))  # type: ignore[union-attr]
        if self.kind == DataKind.BYTES:
            return BytesIO(self.value)  # type: ignore[arg-type]
        return open(self.value, "rb")

    def add_size(self, add: int) -> SavedData:
        """Return a copy with ``add`` more bytes counted; in-memory data is
        returned unchanged.
        """
        if self.kind != DataKind.FILE:
            return self
        return SavedData(self.kind, self.value, self._size + add)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SavedData):
            return (self.kind, self.value, self._size) == (other.kind, other.value, other._size)
        return NotImplemented

    def __repr__(self) -> str:
        if self.kind == DataKind.FILE:
            return f"{self.__class__.__name__}.from_file({self.value!r}, {self._size!r})"
        if len(self.value) > 97:
            v = repr(self.value[:97])[:-1] + "...'"
        else:
            v = repr(self.value)
        return f"{self.__class__.__name__}.from_{self.kind.name.lower()}({v})"


class SavedField:
    """A saved field (to memory or filesystem) from a multipart request."""

    def __init__(self, headers: FieldHeaders, data: SavedData) -> None:
        self.headers = headers
        self.data = data

    def __eq__(self, other: object) -> bool:
        if isinstance(other, SavedField):
            return self.headers == other.headers and self.data == other.data
        return NotImplemented

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(headers={self.headers!r}, data={self.data!r})"


def _remove_tree(path: str) -> None:
    logger.debug("Removing temporary save directory: %r", path)
    shutil.rmtree(path, ignore_errors=True)


class SaveDir:
    """The directory that backs the saved files of one request.

    A temporary directory is removed along with its contents when it is
    released: by :meth:`cleanup`, on leaving a ``with`` block, or when the
    last reference to it is garbage collected.  A permanent directory is
    left on the filesystem.

    :param path: the directory, which must already exist
    :param temporary: whether this object owns the directory and removes it
    """

    def __init__(self, path: str | os.PathLike[str], temporary: bool = False) -> None:
        self.logger = logging.getLogger(__name__)
        self._path = os.fspath(path)
        self._temporary = temporary
        self._finalizer: weakref.finalize | None = None
        if temporary:
            self._finalizer = weakref.finalize(self, _remove_tree, self._path)

    @classmethod
    def temp(cls, prefix: str = DEFAULT_TEMP_PREFIX, dir: str | None = None) -> SaveDir:
        """Create a new temporary directory with the given prefix, in the OS
        temporary directory unless ``dir`` is given.
        """
        path = tempfile.mkdtemp(prefix=prefix, dir=dir)
        logging.getLogger(__name__).info("Created temporary save directory: %r", path)
        return cls(path, temporary=True)

    @classmethod
    def permanent(cls, path: str | os.PathLike[str]) -> SaveDir:
        return cls(path, temporary=False)

    @property
    def path(self) -> str:
        return self._path

    @property
    def is_temporary(self) -> bool:
        """Whether this directory will be removed when it is released."""
        return self._temporary

    def keep(self) -> None:
        """Convert a temporary directory to a permanent one.  This is a no-op
        if it already is permanent.

        Note that the OS may still clear its temporary directory (where
        temporary save directories live by default) at any time, so files
        worth keeping are better moved somewhere permanent.
        """
        if self._finalizer is not None:
            self._finalizer.detach()
            self._finalizer = None
        if self._temporary:
            self.logger.info("Keeping temporary save directory: %r", self._path)
        self._temporary = False

    def into_path(self) -> str:
        """Keep the directory and return its path."""
        self.keep()
        return self._path

    def cleanup(self) -> None:
        """Release the directory: a temporary one is removed, a permanent one
        is left alone.  Safe to call more than once.
        """
        if self._finalizer is not None:
            self._finalizer()
            self._finalizer = None

    def delete(self, missing_ok: bool = False) -> None:
        """Delete this directory and its contents, regardless of whether it
        is temporary.

        Failures are raised as :class:`OSError`.  A directory that no longer
        exists raises :class:`FileNotFoundError` unless ``missing_ok`` is set.
        """
        self.logger.info("Deleting save directory: %r", self._path)
        try:
            shutil.rmtree(self._path)
        except FileNotFoundError:
            if not missing_ok:
                raise
        if self._finalizer is not None:
            self._finalizer.detach()
            self._finalizer = None

    def __fspath__(self) -> str:
        return self._path

    def __enter__(self) -> SaveDir:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.cleanup()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self._path!r}, temporary={self._temporary!r})"


class Entries:
    """The saved fields of a multipart request.

    ``fields`` maps each field name to its saved records in arrival order.
    Each list is guaranteed not to be empty unless modified externally.
    """

    def __init__(self, save_dir: SaveDir) -> None:
        self.fields: dict[str, list[SavedField]] = {}
        self.save_dir = save_dir

    def is_empty(self) -> bool:
        return not self.fields

    def fields_for(self, name: str) -> list[SavedField]:
        """The list of saved records for ``name``, created if missing."""
        return self.fields.setdefault(name, [])

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def __getitem__(self, name: str) -> list[SavedField]:
        return self.fields[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def __enter__(self) -> Entries:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_value: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        self.save_dir.cleanup()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(fields={self.fields!r}, save_dir={self.save_dir!r})"


class PartialSavedField:
    """The field that was being read when a whole-request save quit.

    ``dest`` holds whatever was saved of it, if the operation got that far.
    ``source.body`` is positioned just after the last byte that was saved;
    for a field cut off by the count limit nothing has been read.
    """

    def __init__(self, source: MultipartField, dest: SavedField | None = None) -> None:
        self.source = source
        self.dest = dest

    @property
    def field_name(self) -> str:
        return self.source.name

    def drain(self) -> int:
        """Read and discard the rest of the field's body, returning the
        number of bytes discarded.  This is never done automatically.
        """
        body = self.source.body
        if body is None:
            return 0

        drained = 0
        while True:
            try:
                buf = body.fill_buf()
            except InterruptedError:
                continue
            if not buf:
                break
            body.consume(len(buf))
            drained += len(buf)

        logger.debug("Drained %d bytes from field %r", drained, self.field_name)
        return drained

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(field_name={self.field_name!r}, dest={self.dest!r})"


class PartialEntries:
    """The partial result of a whole-request save.

    Contains the fully saved entries as well as the field that was in the
    process of being read when the operation quit, if any.
    """

    def __init__(self, entries: Entries, partial_field: PartialSavedField | None = None) -> None:
        self.entries = entries
        self.partial_field = partial_field

    def keep_partial(self) -> Entries:
        """Add the partially saved field to the entries, if any of it was
        written, and return the entries.  The rest of the partial field is
        discarded.
        """
        partial = self.partial_field
        if partial is not None and partial.dest is not None and partial.dest.data.size > 0:
            self.entries.fields_for(partial.field_name).append(partial.dest)
        self.partial_field = None
        return self.entries

    def into_full(self) -> Entries:
        """Discard the partial field and return the fully saved entries."""
        return self.entries

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PartialEntries):
            return self.entries is other.entries and self.partial_field is other.partial_field
        return NotImplemented

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(entries={self.entries!r}, partial_field={self.partial_field!r})"
