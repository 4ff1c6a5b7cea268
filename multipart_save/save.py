"""Saving multipart fields to memory or the filesystem.

A :class:`RequestSaveBuilder` saves every field of a request, a
:class:`FieldSaveBuilder` saves a single field body.  Both take their
options from the same configuration dict::

    result = RequestSaveBuilder(source).size_limit(10 * 1024 * 1024).count_limit(4).temp()

Each setter returns a new builder with that option changed; the builder it
was called on is left as it was.

By default files are opened with ``O_WRONLY | O_CREAT | O_EXCL``, so an
existing file is never overwritten.  This avoids clobbering the files of
another request saved into the same directory.

**Do not trust user input.**  Building paths from a client-supplied filename
lets a malicious client overwrite anything the server process can write.
Sanitising such input is left to the caller.
"""

from __future__ import annotations

import logging
import os
import random
import string
import tempfile
from enum import IntEnum
from io import BytesIO
from typing import TYPE_CHECKING

from .entries import DEFAULT_TEMP_PREFIX, Entries, PartialEntries, PartialSavedField, SaveDir, SavedData, SavedField
from .exceptions import ConfigError, InvalidTextError
from .fields import End, EntryError
from .result import COUNT_LIMIT, Error, Full, Partial, PartialReason, ReasonKind
from .streams import as_buffered, copy_buf, copy_limited, write_all

if TYPE_CHECKING:  # pragma: no cover
    from typing import Any, TypedDict

    from .fields import FieldSource
    from .result import SaveResult
    from .streams import BufferedSource, SupportsRead, SupportsWrite

    class SaveConfig(TypedDict, total=False):
        SIZE_LIMIT: int | None
        COUNT_LIMIT: int | None
        MEMORY_THRESHOLD: int
        TEXT_POLICY: TextPolicy
        OPEN_FLAGS: int
        FILE_MODE: int

    EntriesSaveResult = SaveResult[Entries, PartialEntries]
    FieldSaveResult = SaveResult[SavedData, SavedData]


class TextPolicy(IntEnum):
    """What to do with field content that fits in memory."""

    #: Decode as UTF-8 if possible, otherwise keep the bytes.
    TRY = 0
    #: Decode as UTF-8 or fail with InvalidTextError.
    FORCE = 1
    #: Never decode.
    IGNORE = 2


# 8 MiB
DEFAULT_MEMORY_THRESHOLD = 8 * 1024 * 1024

DEFAULT_OPEN_FLAGS = os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_BINARY", 0)

_ACCESS_MODE_MASK = getattr(os, "O_ACCMODE", os.O_RDONLY | os.O_WRONLY | os.O_RDWR)

RANDOM_FILENAME_LEN = 12

_ALPHANUMERIC = string.ascii_letters + string.digits

_rng: random.Random | None = None
_rng_pid: int | None = None

# Get logger for this module.
logger = logging.getLogger(__name__)


def _get_rng() -> random.Random:
    # Seeded from os.urandom on creation; a forked child gets its own.
    global _rng, _rng_pid
    pid = os.getpid()
    if _rng is None or _rng_pid != pid:
        _rng = random.Random()
        _rng_pid = pid
    return _rng


def random_alphanumeric(length: int) -> str:
    rng = _get_rng()
    return "".join(rng.choice(_ALPHANUMERIC) for _ in range(length))


def rand_filename() -> str:
    return random_alphanumeric(RANDOM_FILENAME_LEN)


def _create_parent_dirs(path: str) -> None:
    parent = os.path.dirname(path)
    if not parent:
        return
    if parent == path:
        logger.warning("Attempting to save file in what looks like a root directory. File path: %r", path)
        return
    os.makedirs(parent, exist_ok=True)


def _check_count(name: str, value: Any, allow_none: bool) -> None:
    if value is None and allow_none:
        return
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ConfigError(f"{name} must be a non-negative integer, not {value!r}")


class SaveBuilder:
    """Holds the options shared by every save operation.

    :param savable: what is being saved; see the subclasses
    :param config: options overriding :attr:`DEFAULT_CONFIG`
    """

    #: This is the default configuration for our save builders.  Any key
    #: given in ``config`` overrides the value here.
    DEFAULT_CONFIG: SaveConfig = {
        "SIZE_LIMIT": None,
        "COUNT_LIMIT": None,
        "MEMORY_THRESHOLD": DEFAULT_MEMORY_THRESHOLD,
        "TEXT_POLICY": TextPolicy.TRY,
        "OPEN_FLAGS": DEFAULT_OPEN_FLAGS,
        "FILE_MODE": 0o666,
    }

    def __init__(self, savable: Any, config: SaveConfig | dict[str, Any] = {}) -> None:
        self.logger = logging.getLogger(__name__)
        self.savable = savable

        unknown = set(config) - set(self.DEFAULT_CONFIG)
        if unknown:
            raise ConfigError("Unknown configuration keys: %s" % ", ".join(sorted(unknown)))

        self.config: SaveConfig = self.DEFAULT_CONFIG.copy()
        self.config.update(config)  # type: ignore[typeddict-item]
        self._validate()

    def _validate(self) -> None:
        config = self.config
        _check_count("SIZE_LIMIT", config["SIZE_LIMIT"], allow_none=True)
        _check_count("COUNT_LIMIT", config["COUNT_LIMIT"], allow_none=True)
        _check_count("MEMORY_THRESHOLD", config["MEMORY_THRESHOLD"], allow_none=False)
        _check_count("OPEN_FLAGS", config["OPEN_FLAGS"], allow_none=False)
        _check_count("FILE_MODE", config["FILE_MODE"], allow_none=False)
        try:
            config["TEXT_POLICY"] = TextPolicy(config["TEXT_POLICY"])
        except ValueError:
            raise ConfigError("TEXT_POLICY must be a TextPolicy, not %r" % (config["TEXT_POLICY"],))

        flags = config["OPEN_FLAGS"]
        if flags & _ACCESS_MODE_MASK == os.O_RDONLY:
            # Opening for reading only would make saving pointless.
            config["OPEN_FLAGS"] = flags | os.O_WRONLY

    def _with(self, **changes: Any) -> Any:
        config = dict(self.config)
        config.update(changes)
        return self.__class__(self.savable, config)

    def size_limit(self, limit: int | None) -> Any:
        """Set the maximum number of bytes to save *per field*.  ``None``
        clears the limit.
        """
        return self._with(SIZE_LIMIT=limit)

    def memory_threshold(self, threshold: int) -> Any:
        """Set the size at which a field switches from being buffered in
        memory to being written to disk.

        ``0`` forces every non-empty field to the filesystem; a very large
        value effectively keeps every field in memory.
        """
        return self._with(MEMORY_THRESHOLD=threshold)

    def try_text(self) -> Any:
        """Decode in-memory content as UTF-8, falling back to bytes.  Has no
        effect once the memory threshold is reached.
        """
        return self._with(TEXT_POLICY=TextPolicy.TRY)

    def force_text(self) -> Any:
        """Decode in-memory content as UTF-8 or return an error."""
        return self._with(TEXT_POLICY=TextPolicy.FORCE)

    def ignore_text(self) -> Any:
        """Don't try to decode or validate any content as UTF-8."""
        return self._with(TEXT_POLICY=TextPolicy.IGNORE)

    def open_flags(self, flags: int, mode: int | None = None) -> Any:
        """Set the ``os.open()`` flags (and optionally the permission bits)
        used to create files.  Write access is always added back.
        """
        if mode is None:
            return self._with(OPEN_FLAGS=flags)
        return self._with(OPEN_FLAGS=flags, FILE_MODE=mode)

    def fork(self, body: BufferedSource | SupportsRead) -> FieldSaveBuilder:
        """A single-field builder with the same configuration."""
        return FieldSaveBuilder(body, self.config)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(savable={self.savable!r}, config={self.config!r})"


class FieldSaveBuilder(SaveBuilder):
    """Saves one field body.

    The body is buffered in memory up to the memory threshold.  Content that
    ends within the threshold is returned as text or bytes and never touches
    the filesystem; anything longer is written to the destination file.

    :param body: a stream with ``fill_buf()``/``consume()``, or any object
                 with ``read(n)``, which is wrapped in a
                 :class:`~multipart_save.streams.BufferedBody`
    """

    def __init__(self, body: BufferedSource | SupportsRead, config: SaveConfig | dict[str, Any] = {}) -> None:
        super().__init__(as_buffered(body), config)

    def temp(self) -> FieldSaveResult:
        """Save the field, potentially to a randomly named file in the OS
        temporary directory.
        """
        return self.with_path(os.path.join(tempfile.gettempdir(), rand_filename()))

    def with_filename(self, filename: str) -> FieldSaveResult:
        """Save the field, potentially to a file with the given name in the
        OS temporary directory.
        """
        return self.with_path(os.path.join(tempfile.gettempdir(), filename))

    def with_dir(self, dir: str | os.PathLike[str]) -> FieldSaveResult:
        """Save the field, potentially to a randomly named file in ``dir``."""
        return self.with_path(os.path.join(os.fspath(dir), rand_filename()))

    def with_path(self, path: str | os.PathLike[str]) -> FieldSaveResult:
        """Save the field, potentially to the file at ``path``.

        The file is not created until the memory threshold is exceeded.
        Missing parent directories are created, and the file is opened with
        the configured flags.  The saved size is truncated to the size limit,
        if one is set.
        """
        path = os.fspath(path)

        res = self._save_mem()
        if not isinstance(res, Full):
            return res

        buffered, complete = res.value
        if complete:
            return self._resolve_in_memory(buffered)

        return self._spill(path, buffered)

    def write_to(self, dest: SupportsWrite) -> SaveResult[int, int]:
        """Write the field body to ``dest``, truncating it to the size limit
        if one is set.

        Returns the number of bytes copied.  Whether the limit was hit is
        checked without consuming anything more from the body.
        """
        limit = self.config["SIZE_LIMIT"]
        if limit is not None:
            return copy_limited(self.savable, dest, limit)
        return copy_buf(self.savable, dest)

    def _save_mem(self) -> SaveResult[tuple[bytes, bool], SavedData]:
        buf = BytesIO()
        size_limit = self.config["SIZE_LIMIT"]
        threshold = self.config["MEMORY_THRESHOLD"]

        if size_limit is not None and size_limit < threshold:
            res = self.write_to(buf)
            if isinstance(res, Full):
                return Full((buf.getvalue(), True))
            return res.map(lambda _: SavedData.from_bytes(buf.getvalue()))

        res = copy_limited(self.savable, buf, threshold)
        if isinstance(res, Full):
            return Full((buf.getvalue(), True))
        if isinstance(res, Partial) and res.reason.kind == ReasonKind.SIZE_LIMIT:
            return Full((buf.getvalue(), False))
        return res.map(lambda _: SavedData.from_bytes(buf.getvalue()))

    def _resolve_in_memory(self, data: bytes) -> FieldSaveResult:
        policy = self.config["TEXT_POLICY"]
        if policy == TextPolicy.IGNORE:
            return Full(SavedData.from_bytes(data))

        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            if policy == TextPolicy.FORCE:
                self.logger.warning("Field content is not valid UTF-8: %s", e)
                error = InvalidTextError("Field content is not valid UTF-8")
                error.__cause__ = e
                return Error(error)
            return Full(SavedData.from_bytes(data))

        return Full(SavedData.from_text(text))

    def _spill(self, path: str, buffered: bytes) -> FieldSaveResult:
        # Content that did not fit in memory is treated as opaque bytes.
        self.logger.info("Field exceeds memory threshold of %d bytes, saving to: %r", len(buffered), path)
        try:
            _create_parent_dirs(path)
            fd = os.open(path, self.config["OPEN_FLAGS"], self.config["FILE_MODE"])
        except OSError as e:
            self.logger.exception("Error opening file: %r", path)
            return Error(e)

        # Unbuffered, so every write error surfaces in the copy itself.
        with open(fd, "wb", buffering=0) as dest:
            res = write_all(buffered, dest)
            if isinstance(res, Partial):
                return Partial(SavedData.from_file(path, res.partial), res.reason)
            if isinstance(res, Error):
                return Partial(SavedData.from_file(path, 0), PartialReason.io_error(res.error))

            data = SavedData.from_file(path, len(buffered))
            size_limit = self.config["SIZE_LIMIT"]
            if size_limit is None:
                copied = copy_buf(self.savable, dest)
            else:
                copied = copy_limited(self.savable, dest, size_limit - len(buffered))

        if isinstance(copied, Full):
            return Full(data.add_size(copied.value))
        if isinstance(copied, Partial):
            if copied.reason.kind == ReasonKind.SIZE_LIMIT:
                self.logger.warning("Field truncated to size limit of %d bytes: %r", size_limit, path)
            return Partial(data.add_size(copied.partial), copied.reason)
        assert isinstance(copied, Error)
        return Partial(data, PartialReason.io_error(copied.error))


class RequestSaveBuilder(SaveBuilder):
    """Saves every field of a multipart request.

    Text fields are stored as they are.  File fields are saved one at a time
    with a :class:`FieldSaveBuilder` sharing this builder's configuration,
    into randomly named files in the save directory.

    :param source: a field source with a ``read_entry()`` method
    """

    def __init__(self, source: FieldSource, config: SaveConfig | dict[str, Any] = {}) -> None:
        super().__init__(source, config)

    def count_limit(self, limit: int | None) -> RequestSaveBuilder:
        """Set the maximum number of file fields to save.  ``None`` clears
        the limit.
        """
        return self._with(COUNT_LIMIT=limit)

    def temp(self) -> EntriesSaveResult:
        """Save the file fields to a new temporary directory in the OS
        temporary directory.  See :class:`~multipart_save.entries.SaveDir`
        for when it is removed.
        """
        return self.temp_with_prefix(DEFAULT_TEMP_PREFIX)

    def temp_with_prefix(self, prefix: str) -> EntriesSaveResult:
        """Save the file fields to a new temporary directory whose name
        starts with ``prefix``.
        """
        try:
            save_dir = SaveDir.temp(prefix)
        except OSError as e:
            self.logger.exception("Error creating temporary save directory")
            return Error(e)
        return self.with_entries(Entries(save_dir))

    def with_temp_dir(self, path: str | os.PathLike[str]) -> EntriesSaveResult:
        """Save the file fields to an existing directory that is then owned
        as a temporary directory.
        """
        return self.with_entries(Entries(SaveDir(path, temporary=True)))

    def with_dir(self, path: str | os.PathLike[str]) -> EntriesSaveResult:
        """Save the file fields to a permanent directory, creating it and any
        missing parents.
        """
        try:
            os.makedirs(path, exist_ok=True)
        except OSError as e:
            self.logger.exception("Error creating save directory: %r", path)
            return Error(e)
        self.logger.info("Saving to directory: %r", path)
        return self.with_entries(Entries(SaveDir.permanent(path)))

    def with_entries(self, entries: Entries) -> EntriesSaveResult:
        """Run the save into an existing :class:`Entries`.  May be used to
        resume saving after handling a partial result.
        """
        source = self.savable
        count_limit = self.config["COUNT_LIMIT"]
        count = 0

        while True:
            entry = source.read_entry()
            if isinstance(entry, End):
                break
            if isinstance(entry, EntryError):
                self.logger.warning("Error reading the next field: %r", entry.error)
                return Partial(PartialEntries(entries), PartialReason.io_error(entry.error))

            field = entry.field
            if field.is_text:
                self.logger.debug("Saving text field %r", field.name)
                data = SavedData.from_text(field.text)  # type: ignore[arg-type]
                entries.fields_for(field.name).append(SavedField(field.headers, data))
                source = field.reclaim()
                continue

            if count_limit is not None and count >= count_limit:
                self.logger.warning("Count limit of %d files reached at field %r", count_limit, field.name)
                return Partial(PartialEntries(entries, PartialSavedField(field)), COUNT_LIMIT)

            count += 1
            self.logger.debug("Saving file field %r", field.name)
            res = self.fork(field.body).with_dir(entries.save_dir)  # type: ignore[arg-type]

            if isinstance(res, Full):
                entries.fields_for(field.name).append(SavedField(field.headers, res.value))
                source = field.reclaim()
            elif isinstance(res, Partial):
                dest = SavedField(field.headers, res.partial)
                return Partial(PartialEntries(entries, PartialSavedField(field, dest)), res.reason)
            else:
                assert isinstance(res, Error)
                return Partial(
                    PartialEntries(entries, PartialSavedField(field)),
                    PartialReason.io_error(res.error),
                )

        return Full(entries)


def save_form(
    source: FieldSource,
    dir: str | os.PathLike[str] | None = None,
    config: SaveConfig | dict[str, Any] = {},
) -> EntriesSaveResult:
    """Save every field from ``source`` into ``dir``, which is kept, or into
    a new temporary directory if ``dir`` is ``None``.

    .. code-block:: python

        result = save_form(FieldList(parts), config={"SIZE_LIMIT": 1024 * 1024})
        entries = result.into_result_strict()

    :param source: a field source with a ``read_entry()`` method
    :param dir: the permanent save directory, if any
    :param config: options overriding :attr:`SaveBuilder.DEFAULT_CONFIG`
    """
    builder = RequestSaveBuilder(source, config)
    if dir is None:
        return builder.temp()
    return builder.with_dir(dir)
