"""The three-outcome result type returned by every save operation.

A save either finishes (:class:`Full`), stops partway through for a specific
reason while keeping what it produced so far (:class:`Partial`), or fails
before producing anything (:class:`Error`).  Nothing in the save paths raises
for ordinary data conditions; callers inspect the returned value instead::

    result = builder.with_dir("uploads")
    if result.is_full:
        entries = result.value
    elif result.is_partial:
        entries = result.partial.keep_partial()
        log.warning("Upload truncated: %r", result.reason)
    else:
        raise result.error
"""

from __future__ import annotations

from enum import IntEnum
from typing import TYPE_CHECKING, Generic, TypeVar

from .exceptions import ReasonError

if TYPE_CHECKING:  # pragma: no cover
    from collections.abc import Callable
    from typing import Any

S = TypeVar("S")
P = TypeVar("P")


class ReasonKind(IntEnum):
    """Why a save operation stopped partway through."""

    #: The count limit for files in the request was hit.  The associated
    #: field has not been read at all.
    COUNT_LIMIT = 0
    #: The size limit for an individual field was hit.  The field was
    #: written up to the limit.
    SIZE_LIMIT = 1
    #: An I/O error occurred during the operation.
    IO_ERROR = 2


class PartialReason:
    """The reason attached to every :class:`Partial` result.

    The two limit reasons are expected, policy-driven truncations.
    ``IO_ERROR`` carries the :class:`OSError` that interrupted the operation.
    """

    def __init__(self, kind: ReasonKind, error: OSError | None = None) -> None:
        if (kind == ReasonKind.IO_ERROR) != (error is not None):
            raise ValueError("An error must be given exactly when kind is IO_ERROR")
        self.kind = kind
        self.error = error

    @classmethod
    def io_error(cls, error: OSError) -> PartialReason:
        return cls(ReasonKind.IO_ERROR, error)

    @property
    def is_io_error(self) -> bool:
        return self.kind == ReasonKind.IO_ERROR

    @property
    def is_limit(self) -> bool:
        """Whether a configured limit, rather than a failure, stopped the save."""
        return self.kind != ReasonKind.IO_ERROR

    def unwrap_err(self) -> OSError:
        """Return the error in the ``IO_ERROR`` case or raise otherwise."""
        return self.expect_err("PartialReason was not IO_ERROR")

    def expect_err(self, msg: str) -> OSError:
        """Return the error in the ``IO_ERROR`` case or raise a
        :class:`~multipart_save.exceptions.ReasonError` with the given message.
        """
        if self.error is None:
            raise ReasonError(f"{msg}: {self!r}")
        return self.error

    def __eq__(self, other: object) -> bool:
        if isinstance(other, PartialReason):
            return self.kind == other.kind and self.error is other.error
        return NotImplemented

    def __hash__(self) -> int:
        return hash((self.kind, id(self.error)))

    def __repr__(self) -> str:
        if self.error is not None:
            return f"{self.__class__.__name__}({self.kind.name}, {self.error!r})"
        return f"{self.__class__.__name__}({self.kind.name})"


COUNT_LIMIT = PartialReason(ReasonKind.COUNT_LIMIT)
SIZE_LIMIT = PartialReason(ReasonKind.SIZE_LIMIT)


def _to_full(partial: Any) -> Any:
    # A partial payload that wraps its full counterpart (e.g. PartialEntries)
    # knows how to unwrap itself; everything else is already the full type.
    into_full = getattr(partial, "into_full", None)
    if into_full is not None:
        return into_full()
    return partial


class SaveResult(Generic[S, P]):
    """Base class of :class:`Full`, :class:`Partial` and :class:`Error`.

    Do not instantiate this class directly.
    """

    is_full = False
    is_partial = False
    is_error = False

    def map(self, func: Callable[[Any], Any]) -> SaveResult[Any, Any]:
        """Map the ``Full`` or ``Partial`` payload to a new value, retaining
        the reason in the ``Partial`` case.  A ``Partial`` payload is first
        converted to the full type.
        """
        raise NotImplementedError  # pragma: no cover

    def into_opt_both(self) -> tuple[S | None, OSError | None]:
        """Decompose into ``(best-effort value, underlying error)``."""
        raise NotImplementedError  # pragma: no cover

    def into_result(self) -> S:
        """Return the value, discarding the reason in the ``Partial`` case.
        Raises the error in the ``Error`` case.
        """
        raise NotImplementedError  # pragma: no cover

    def into_result_strict(self) -> S:
        """Pessimistic version of :meth:`into_result` which also raises for a
        ``Partial`` caused by an I/O error.  Hitting a configured limit still
        returns the value.

        Note that a partially written file may remain on disk when the error
        is raised; it is only removed along with a temporary save directory.
        """
        raise NotImplementedError  # pragma: no cover

    def okish(self) -> S | None:
        """The best-effort value; there may still have been an error."""
        return self.into_opt_both()[0]

    def into_entries(self) -> Any:
        """Take the :class:`~multipart_save.entries.Entries` from a
        whole-request result, discarding the reason and any partial field.
        Returns ``None`` in the ``Error`` case.
        """
        return self.okish()


class Full(SaveResult[S, P]):
    """The operation was a total success."""

    is_full = True

    def __init__(self, value: S) -> None:
        self.value = value

    def map(self, func: Callable[[Any], Any]) -> SaveResult[Any, Any]:
        return Full(func(self.value))

    def into_opt_both(self) -> tuple[S | None, OSError | None]:
        return self.value, None

    def into_result(self) -> S:
        return self.value

    def into_result_strict(self) -> S:
        return self.value

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Full):
            return self.value == other.value
        return NotImplemented

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.value!r})"


class Partial(SaveResult[S, P]):
    """The operation quit partway through.  Included is the partial result
    along with the reason.
    """

    is_partial = True

    def __init__(self, partial: P, reason: PartialReason) -> None:
        self.partial = partial
        self.reason = reason

    def map(self, func: Callable[[Any], Any]) -> SaveResult[Any, Any]:
        return Partial(func(_to_full(self.partial)), self.reason)

    def into_opt_both(self) -> tuple[S | None, OSError | None]:
        return _to_full(self.partial), self.reason.error

    def into_result(self) -> S:
        return _to_full(self.partial)

    def into_result_strict(self) -> S:
        if self.reason.error is not None:
            raise self.reason.error
        return _to_full(self.partial)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Partial):
            return self.partial == other.partial and self.reason == other.reason
        return NotImplemented

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.partial!r}, {self.reason!r})"


class Error(SaveResult[S, P]):
    """An error occurred at the start of the operation, before anything was
    done.
    """

    is_error = True

    def __init__(self, error: OSError) -> None:
        self.error = error

    def map(self, func: Callable[[Any], Any]) -> SaveResult[Any, Any]:
        return self

    def into_opt_both(self) -> tuple[S | None, OSError | None]:
        return None, self.error

    def into_result(self) -> S:
        raise self.error

    def into_result_strict(self) -> S:
        raise self.error

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Error):
            return self.error is other.error
        return NotImplemented

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.error!r})"
