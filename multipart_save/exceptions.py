from __future__ import annotations

import errno


class SaveError(OSError):
    """Base error class for failures synthesised while saving fields.

    Every instance is also an :class:`OSError`, so it can be carried as the
    ``error`` of an ``Error`` result or an ``IO_ERROR`` partial reason just
    like a failure coming from the filesystem itself.
    """

    #: The errno used when this error is raised without one.
    default_errno = errno.EIO

    def __init__(self, message: str, *args: object) -> None:
        super().__init__(self.default_errno, message, *args)


class ShortWriteError(SaveError):
    """Raised when a writer accepts zero bytes of a non-empty buffer."""

    def __init__(self, message: str = "failed to write whole buffer") -> None:
        super().__init__(message)


class InvalidTextError(SaveError, ValueError):
    """This error is returned when the text policy is ``FORCE`` and a field's
    content is not valid UTF-8.  The original :class:`UnicodeDecodeError` is
    kept as ``__cause__``.
    """

    default_errno = errno.EINVAL


class ConfigError(ValueError):
    """Raised when a :class:`~multipart_save.save.SaveBuilder` is given an
    invalid configuration value.
    """

    pass


class ReasonError(ValueError):
    """Raised when an I/O error is requested from a partial reason that was
    caused by a limit instead.  This always indicates a programming error at
    the call site.
    """

    pass


class FieldHeaderError(SaveError, ValueError):
    """Raised by a field source when a field's headers cannot be used, for
    example when the ``Content-Disposition`` header carries no name.
    """

    default_errno = errno.EINVAL
