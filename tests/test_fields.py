from __future__ import annotations

import errno
import unittest
from io import BytesIO

from multipart_save.exceptions import FieldHeaderError
from multipart_save.fields import End, Entry, EntryError, FieldHeaders, FieldList, MultipartField, parse_options_header
from multipart_save.streams import BufferedBody


class TestParseOptionsHeader(unittest.TestCase):
    def test_simple(self) -> None:
        t, p = parse_options_header("application/json")
        self.assertEqual(t, "application/json")
        self.assertEqual(p, {})

    def test_blank(self) -> None:
        self.assertEqual(parse_options_header(""), ("", {}))
        self.assertEqual(parse_options_header(None), ("", {}))

    def test_bytes(self) -> None:
        t, p = parse_options_header(b"form-data;     name=avatar")
        self.assertEqual(t, "form-data")
        self.assertEqual(p, {"name": "avatar"})

    def test_multiple_params(self) -> None:
        t, p = parse_options_header('form-data; name="avatar"; filename="me.png"')
        self.assertEqual(p, {"name": "avatar", "filename": "me.png"})

    def test_quoted_param_with_semicolon(self) -> None:
        t, p = parse_options_header('form-data; name="user;name"; filename="video;game.mp4"')
        self.assertEqual(p["name"], "user;name")
        self.assertEqual(p["filename"], "video;game.mp4")

    def test_quoted_param_with_escapes(self) -> None:
        t, p = parse_options_header(r'form-data; name="field"; filename="My \"Cool\" File.txt"')
        self.assertEqual(p["filename"], 'My "Cool" File.txt')

    def test_handles_ie6_bug(self) -> None:
        t, p = parse_options_header('form-data; filename="C:\\this\\is\\a\\path\\file.txt"')
        self.assertEqual(p["filename"], "file.txt")

    def test_handles_rfc_2231(self) -> None:
        t, p = parse_options_header("form-data; filename*=us-ascii'en-us'encoded%20name.txt")
        self.assertEqual(p["filename"], "encoded name.txt")


class TestFieldHeaders(unittest.TestCase):
    def test_parse(self) -> None:
        h = FieldHeaders.parse(
            {
                "Content-Disposition": 'form-data; name="avatar"; filename="me.png"',
                "Content-Type": "image/png",
            }
        )
        self.assertEqual(h, FieldHeaders("avatar", "me.png", "image/png"))
        self.assertTrue(h.is_file)

    def test_parse_is_case_insensitive(self) -> None:
        h = FieldHeaders.parse({b"content-disposition": b'form-data; name="bio"'})
        self.assertEqual(h.name, "bio")
        self.assertIsNone(h.filename)
        self.assertIsNone(h.content_type)
        self.assertFalse(h.is_file)

    def test_parse_without_name(self) -> None:
        with self.assertRaises(FieldHeaderError) as cm:
            FieldHeaders.parse({"Content-Disposition": 'form-data; filename="x"'})
        self.assertEqual(cm.exception.errno, errno.EINVAL)

        with self.assertRaises(FieldHeaderError):
            FieldHeaders.parse({})

    def test_repr(self) -> None:
        self.assertEqual(
            repr(FieldHeaders("a", "b.txt")),
            "FieldHeaders(name='a', filename='b.txt', content_type=None)",
        )


class TestMultipartField(unittest.TestCase):
    def test_exactly_one_payload(self) -> None:
        src = FieldList([])
        with self.assertRaises(ValueError):
            MultipartField(FieldHeaders("a"), src)
        with self.assertRaises(ValueError):
            MultipartField(FieldHeaders("a"), src, body=BufferedBody(BytesIO()), text="x")

    def test_reclaim(self) -> None:
        src = FieldList([])
        f = MultipartField(FieldHeaders("a"), src, text="x")
        self.assertIs(f.reclaim(), src)
        self.assertEqual(f.name, "a")
        self.assertTrue(f.is_text)


class TestFieldList(unittest.TestCase):
    def test_fields_in_order(self) -> None:
        src = FieldList(
            [
                ({"Content-Disposition": 'form-data; name="bio"'}, "hello world"),
                (FieldHeaders("avatar", "me.png"), b"\x89PNG"),
                (FieldHeaders("notes", "notes.txt"), "text as a file"),
                (FieldHeaders("raw"), BytesIO(b"stream")),
            ]
        )

        e = src.read_entry()
        assert isinstance(e, Entry)
        self.assertTrue(e.field.is_text)
        self.assertEqual(e.field.text, "hello world")

        e = src.read_entry()
        assert isinstance(e, Entry)
        self.assertFalse(e.field.is_text)
        self.assertEqual(e.field.body.read(), b"\x89PNG")

        e = src.read_entry()
        assert isinstance(e, Entry)
        self.assertEqual(e.field.body.read(), b"text as a file")

        e = src.read_entry()
        assert isinstance(e, Entry)
        self.assertEqual(e.field.body.read(), b"stream")

        self.assertIsInstance(src.read_entry(), End)

    def test_bad_headers_are_an_entry_error(self) -> None:
        src = FieldList([({"Content-Type": "text/plain"}, "x")])
        e = src.read_entry()
        assert isinstance(e, EntryError)
        self.assertIsInstance(e.error, FieldHeaderError)

    def test_iteration_error(self) -> None:
        def parts():
            yield FieldHeaders("a"), "x"
            raise ConnectionResetError(errno.ECONNRESET, "connection reset")

        src = FieldList(parts())
        self.assertIsInstance(src.read_entry(), Entry)
        e = src.read_entry()
        assert isinstance(e, EntryError)
        self.assertIsInstance(e.error, ConnectionResetError)
