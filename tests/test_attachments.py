"""Tests for image attachment validation and batch encoding."""

from __future__ import annotations

import base64
from pathlib import Path
import tempfile
import unittest

from gemini_chat.attachments import (
    MAX_ATTACHMENT_BYTES,
    AttachmentSource,
    encode_attachment,
    encode_batch,
)
from gemini_chat.exceptions import EncodingError, EncodingReason


class EncodeAttachmentTests(unittest.TestCase):
    def test_valid_image_is_base64_encoded(self) -> None:
        part = encode_attachment(AttachmentSource.from_bytes("cat.png", b"\x89PNG", "image/png"))
        self.assertEqual(part.mime_type, "image/png")
        self.assertEqual(base64.b64decode(part.data), b"\x89PNG")

    def test_mime_type_guessed_from_name(self) -> None:
        part = encode_attachment(AttachmentSource.from_bytes("photo.jpg", b"jpeg"))
        self.assertEqual(part.mime_type, "image/jpeg")

    def test_non_image_rejected(self) -> None:
        with self.assertRaises(EncodingError) as ctx:
            encode_attachment(AttachmentSource.from_bytes("notes.txt", b"hi", "text/plain"))
        self.assertEqual(ctx.exception.reason, EncodingReason.UNSUPPORTED_TYPE)
        self.assertIn("not an image", str(ctx.exception))

    def test_oversized_rejected(self) -> None:
        source = AttachmentSource.from_bytes("big.png", b"x" * 11, "image/png")
        with self.assertRaises(EncodingError) as ctx:
            encode_attachment(source, max_bytes=10)
        self.assertEqual(ctx.exception.reason, EncodingReason.TOO_LARGE)

    def test_oversized_non_image_reports_size_limit(self) -> None:
        source = AttachmentSource.from_bytes("report.pdf", b"x" * 11, "application/pdf")
        with self.assertRaises(EncodingError) as ctx:
            encode_attachment(source, max_bytes=10)
        self.assertEqual(ctx.exception.reason, EncodingReason.TOO_LARGE)
        self.assertIn("exceeds", str(ctx.exception))

    def test_default_limit_is_fifteen_mebibytes(self) -> None:
        self.assertEqual(MAX_ATTACHMENT_BYTES, 15 * 1024 * 1024)

    def test_file_on_disk_is_read(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "dot.gif"
            path.write_bytes(b"GIF89a")
            part = encode_attachment(AttachmentSource.from_path(path))
        self.assertEqual(part.mime_type, "image/gif")
        self.assertEqual(part.raw_bytes(), b"GIF89a")

    def test_missing_file_is_unreadable(self) -> None:
        source = AttachmentSource.from_path("/nonexistent/dir/ghost.png")
        with self.assertRaises(EncodingError) as ctx:
            encode_attachment(source)
        self.assertEqual(ctx.exception.reason, EncodingReason.UNREADABLE)


class EncodeBatchTests(unittest.IsolatedAsyncioTestCase):
    async def test_oversized_file_does_not_abort_batch(self) -> None:
        sources = [
            AttachmentSource.from_bytes("huge.png", b"x" * 32, "image/png"),
            AttachmentSource.from_bytes("small.png", b"ok", "image/png"),
        ]
        batch = await encode_batch(sources, max_bytes=16)
        self.assertEqual(len(batch.parts), 1)
        self.assertEqual(batch.parts[0].raw_bytes(), b"ok")
        self.assertEqual(len(batch.errors), 1)
        self.assertEqual(batch.errors[0].reason, EncodingReason.TOO_LARGE)
        self.assertEqual(batch.errors[0].name, "huge.png")
        self.assertFalse(batch.all_failed)

    async def test_successful_parts_keep_input_order(self) -> None:
        sources = [
            AttachmentSource.from_bytes(f"{index}.png", bytes([index]), "image/png")
            for index in range(5)
        ]
        batch = await encode_batch(sources)
        self.assertEqual([part.raw_bytes() for part in batch.parts], [bytes([i]) for i in range(5)])

    async def test_all_failed(self) -> None:
        batch = await encode_batch([AttachmentSource.from_bytes("a.txt", b"a", "text/plain")])
        self.assertTrue(batch.all_failed)

    async def test_empty_batch(self) -> None:
        batch = await encode_batch([])
        self.assertEqual(batch.parts, [])
        self.assertEqual(batch.errors, [])
        self.assertFalse(batch.all_failed)

    async def test_rejection_is_logged(self) -> None:
        with self.assertLogs("gemini_chat.attachments", level="WARNING") as logs:
            await encode_batch([AttachmentSource.from_bytes("a.pdf", b"a", "application/pdf")])
        self.assertTrue(any("attachment.rejected" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
