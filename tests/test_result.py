from __future__ import annotations

import errno
import unittest

from multipart_save.exceptions import ReasonError
from multipart_save.result import COUNT_LIMIT, SIZE_LIMIT, Error, Full, Partial, PartialReason, ReasonKind


class Wrapped:
    def __init__(self, inner: int) -> None:
        self.inner = inner

    def into_full(self) -> int:
        return self.inner


class TestPartialReason(unittest.TestCase):
    def test_limits(self) -> None:
        self.assertEqual(COUNT_LIMIT.kind, ReasonKind.COUNT_LIMIT)
        self.assertEqual(SIZE_LIMIT.kind, ReasonKind.SIZE_LIMIT)
        self.assertTrue(SIZE_LIMIT.is_limit)
        self.assertFalse(SIZE_LIMIT.is_io_error)

    def test_io_error(self) -> None:
        e = OSError(errno.EIO, "boom")
        r = PartialReason.io_error(e)
        self.assertTrue(r.is_io_error)
        self.assertIs(r.unwrap_err(), e)
        self.assertIs(r.expect_err("should not raise"), e)

    def test_unwrap_err_on_limit(self) -> None:
        with self.assertRaises(ReasonError) as cm:
            SIZE_LIMIT.unwrap_err()
        self.assertIn("SIZE_LIMIT", str(cm.exception))

        with self.assertRaises(ReasonError) as cm:
            COUNT_LIMIT.expect_err("expected an error")
        self.assertIn("expected an error", str(cm.exception))

    def test_error_must_match_kind(self) -> None:
        with self.assertRaises(ValueError):
            PartialReason(ReasonKind.IO_ERROR)
        with self.assertRaises(ValueError):
            PartialReason(ReasonKind.SIZE_LIMIT, OSError())

    def test_repr(self) -> None:
        self.assertEqual(repr(COUNT_LIMIT), "PartialReason(COUNT_LIMIT)")


class TestSaveResult(unittest.TestCase):
    def setUp(self) -> None:
        self.e = OSError(errno.ENOSPC, "no space left on device")

    def test_tags(self) -> None:
        self.assertTrue(Full(1).is_full)
        self.assertTrue(Partial(1, SIZE_LIMIT).is_partial)
        self.assertTrue(Error(self.e).is_error)
        self.assertFalse(Error(self.e).is_full)

    def test_map(self) -> None:
        self.assertEqual(Full(2).map(lambda v: v * 10), Full(20))

        mapped = Partial(2, SIZE_LIMIT).map(lambda v: v * 10)
        self.assertEqual(mapped, Partial(20, SIZE_LIMIT))

        err = Error(self.e)
        self.assertIs(err.map(lambda v: v * 10), err)

    def test_map_converts_partial_payload(self) -> None:
        mapped = Partial(Wrapped(3), COUNT_LIMIT).map(lambda v: v + 1)
        self.assertEqual(mapped, Partial(4, COUNT_LIMIT))

    def test_into_result(self) -> None:
        self.assertEqual(Full(1).into_result(), 1)
        self.assertEqual(Partial(Wrapped(2), PartialReason.io_error(self.e)).into_result(), 2)
        with self.assertRaises(OSError) as cm:
            Error(self.e).into_result()
        self.assertIs(cm.exception, self.e)

    def test_into_result_strict(self) -> None:
        self.assertEqual(Full(1).into_result_strict(), 1)

        # Hitting a limit is not a failure.
        self.assertEqual(Partial(2, SIZE_LIMIT).into_result_strict(), 2)
        self.assertEqual(Partial(2, COUNT_LIMIT).into_result_strict(), 2)

        with self.assertRaises(OSError) as cm:
            Partial(2, PartialReason.io_error(self.e)).into_result_strict()
        self.assertIs(cm.exception, self.e)

        with self.assertRaises(OSError):
            Error(self.e).into_result_strict()

    def test_into_opt_both(self) -> None:
        self.assertEqual(Full(1).into_opt_both(), (1, None))
        self.assertEqual(Partial(2, SIZE_LIMIT).into_opt_both(), (2, None))
        self.assertEqual(Partial(Wrapped(3), PartialReason.io_error(self.e)).into_opt_both(), (3, self.e))
        self.assertEqual(Error(self.e).into_opt_both(), (None, self.e))

    def test_okish(self) -> None:
        self.assertEqual(Partial(2, PartialReason.io_error(self.e)).okish(), 2)
        self.assertIsNone(Error(self.e).okish())

    def test_repr(self) -> None:
        self.assertEqual(repr(Full(1)), "Full(1)")
        self.assertEqual(repr(Partial(1, SIZE_LIMIT)), "Partial(1, PartialReason(SIZE_LIMIT))")
