"""The field source interface consumed by the whole-request save.

Boundary parsing lives outside this package.  A field source is any object
with a ``read_entry()`` method returning :class:`Entry`, :class:`End` or
:class:`EntryError`; each :class:`MultipartField` it yields carries either
already-decoded text or a body stream with buffered-read semantics, and hands
the source back through :meth:`MultipartField.reclaim` once it is done.

:class:`FieldList` is a ready-made source over parts that are already
separated, for example by a push parser or in tests.
"""

from __future__ import annotations

from email.message import Message
from io import BytesIO
from typing import TYPE_CHECKING

from .exceptions import FieldHeaderError
from .streams import as_buffered

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Iterable, Mapping
    from typing import IO, Protocol, Union

    from .streams import BufferedSource

    class FieldSource(Protocol):
        def read_entry(self) -> Entry | End | EntryError: ...

    RawHeaders = Mapping[Union[str, bytes], Union[str, bytes]]
    Payload = Union[str, bytes, bytearray, IO[bytes], BufferedSource]


def parse_options_header(value: str | bytes | None) -> tuple[str, dict[str, str]]:
    """Parses a Content-Type or Content-Disposition header into a value and
    its parameters, e.g. ``form-data; name="avatar"`` gives
    ``("form-data", {"name": "avatar"})``.

    RFC 2231 encoded parameters are decoded, and a full Windows path sent as
    a filename (as IE6 does) is cut down to its last component.
    """
    if not value:
        return ("", {})

    if isinstance(value, bytes):
        value = value.decode("latin-1")

    if ";" not in value:
        return (value.lower().strip(), {})

    # Parsing legacy header formats is what the email package is for.
    message = Message()
    message["content-type"] = value
    params = message.get_params()
    assert params, "At least the header value should be present"
    ctype = params.pop(0)[0]
    options: dict[str, str] = {}
    for key, param in params:
        if isinstance(param, tuple):
            param = param[-1]
        if key == "filename":
            if param[1:3] == ":\\" or param[:2] == "\\\\":
                param = param.split("\\")[-1]
        options[key] = param
    return ctype, options


def _get_header(raw: RawHeaders, name: str) -> str | bytes | None:
    for key, value in raw.items():
        if isinstance(key, bytes):
            key = key.decode("latin-1")
        if key.lower() == name:
            return value
    return None


class FieldHeaders:
    """The headers of one multipart field that matter for saving it.

    :param name: the form field name
    :param filename: the client-supplied filename, if the field is a file.
                     This is untrusted input and is never used to build a
                     path by this package.
    :param content_type: the field's content type, if given
    """

    def __init__(self, name: str, filename: str | None = None, content_type: str | None = None) -> None:
        self.name = name
        self.filename = filename
        self.content_type = content_type

    @classmethod
    def parse(cls, raw: RawHeaders) -> FieldHeaders:
        """Build from a raw header mapping with a ``Content-Disposition``
        entry and an optional ``Content-Type`` entry.  Header names are
        matched case-insensitively.
        """
        _, options = parse_options_header(_get_header(raw, "content-disposition"))
        name = options.get("name")
        if name is None:
            raise FieldHeaderError("Field has no name in its Content-Disposition header")

        content_type, _ = parse_options_header(_get_header(raw, "content-type"))
        return cls(name, options.get("filename"), content_type or None)

    @property
    def is_file(self) -> bool:
        return self.filename is not None

    def __eq__(self, other: object) -> bool:
        if isinstance(other, FieldHeaders):
            return (self.name, self.filename, self.content_type) == (
                other.name,
                other.filename,
                other.content_type,
            )
        return NotImplemented

    def __repr__(self) -> str:
        return "{}(name={!r}, filename={!r}, content_type={!r})".format(
            self.__class__.__name__, self.name, self.filename, self.content_type
        )


class MultipartField:
    """One field pulled from a field source.

    Exactly one of ``text`` and ``body`` is set: ``text`` for a field the
    source already decoded, ``body`` for a file stream that still has to be
    read.
    """

    def __init__(
        self,
        headers: FieldHeaders,
        source: FieldSource,
        body: BufferedSource | None = None,
        text: str | None = None,
    ) -> None:
        if (body is None) == (text is None):
            raise ValueError("Exactly one of body and text must be given")
        self.headers = headers
        self.body = body
        self.text = text
        self._source = source

    @property
    def name(self) -> str:
        return self.headers.name

    @property
    def is_text(self) -> bool:
        return self.text is not None

    def reclaim(self) -> FieldSource:
        """Give back the source this field came from, so it can resume
        yielding the fields after this one.
        """
        return self._source

    def __repr__(self) -> str:
        kind = "text" if self.is_text else "file"
        return f"{self.__class__.__name__}(name={self.name!r}, kind={kind})"


class Entry:
    """A field was read."""

    def __init__(self, field: MultipartField) -> None:
        self.field = field


class End:
    """The source has no more fields."""

    pass


class EntryError:
    """The source failed while reading the next field."""

    def __init__(self, error: OSError) -> None:
        self.error = error


class FieldList:
    """A field source over already-separated parts.

    Each part is a ``(headers, payload)`` pair.  ``headers`` is either a
    :class:`FieldHeaders` or a raw header mapping.  A ``str`` payload for a
    field without a filename becomes a text field; anything else (``bytes``,
    a readable stream, or an object that already has ``fill_buf``) becomes a
    file field with a buffered body.

    Parts are pulled lazily from ``parts``, so an ``OSError`` raised while
    iterating it is reported as an :class:`EntryError`.
    """

    def __init__(self, parts: Iterable[tuple[FieldHeaders | RawHeaders, Payload]]) -> None:
        self._parts = iter(parts)

    def read_entry(self) -> Entry | End | EntryError:
        try:
            headers, payload = next(self._parts)
            if not isinstance(headers, FieldHeaders):
                headers = FieldHeaders.parse(headers)
        except StopIteration:
            return End()
        except OSError as e:
            return EntryError(e)

        if isinstance(payload, str):
            if not headers.is_file:
                return Entry(MultipartField(headers, self, text=payload))
            payload = payload.encode("utf-8")
        if isinstance(payload, (bytes, bytearray)):
            payload = BytesIO(bytes(payload))

        return Entry(MultipartField(headers, self, body=as_buffered(payload)))

    def __repr__(self) -> str:
        return "%s()" % self.__class__.__name__
