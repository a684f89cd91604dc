import tempfile
import unittest
from pathlib import Path

from conftest import HEIC_STUB, fake_codec, png_bytes

from heic_converter.engine.convert import (
    ConversionFailure,
    ConversionSuccess,
    UploadedFile,
    convert_batch,
    convert_one,
)


def _upload(directory: Path, name: str, payload: bytes = HEIC_STUB) -> UploadedFile:
    path = directory / name
    path.write_bytes(payload)
    return UploadedFile(path=path, original_name=name, size=len(payload))


class TestConvertOne(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.base = Path(self._tmp.name)
        self.out = self.base / "out"

    def tearDown(self):
        self._tmp.cleanup()

    def test_success_writes_non_empty_jpeg(self):
        outcome = convert_one(_upload(self.base, "IMG_1.HEIF"), self.out, 85, codec=fake_codec)

        self.assertIsInstance(outcome, ConversionSuccess)
        self.assertEqual(outcome.output_path, self.out / "IMG_1.jpg")
        self.assertTrue(outcome.output_path.exists())
        self.assertGreater(outcome.byte_size, 0)
        self.assertEqual(outcome.byte_size, outcome.output_path.stat().st_size)

    def test_disallowed_extension_never_reaches_codec(self):
        calls = []

        def _codec(*args):
            calls.append(args)
            return fake_codec(*args)

        outcome = convert_one(_upload(self.base, "photo.jpg"), self.out, 85, codec=_codec)

        self.assertIsInstance(outcome, ConversionFailure)
        self.assertEqual(outcome.reason_code, "InvalidInputError")
        self.assertEqual(calls, [])

    def test_missing_file_is_invalid_input(self):
        ghost = UploadedFile(path=self.base / "ghost.heic", original_name="ghost.heic")

        outcome = convert_one(ghost, self.out, 85, codec=fake_codec)

        self.assertIsInstance(outcome, ConversionFailure)
        self.assertEqual(outcome.reason_code, "InvalidInputError")

    def test_directory_is_not_a_regular_file(self):
        folder = self.base / "folder.heic"
        folder.mkdir()

        outcome = convert_one(UploadedFile(path=folder, original_name="folder.heic"), self.out, 85, codec=fake_codec)

        self.assertEqual(outcome.reason_code, "InvalidInputError")

    def test_codec_error_becomes_failure(self):
        outcome = convert_one(_upload(self.base, "fake.heic", png_bytes()), self.out, 85, codec=fake_codec)

        self.assertIsInstance(outcome, ConversionFailure)
        self.assertEqual(outcome.reason_code, "CodecError")
        self.assertIsNotNone(outcome.error)

    def test_empty_output_is_failure_and_removed(self):
        outcome = convert_one(_upload(self.base, "empty.heic", b"EMPTY"), self.out, 85, codec=fake_codec)

        self.assertIsInstance(outcome, ConversionFailure)
        self.assertEqual(outcome.reason_code, "EmptyOutputError")
        self.assertFalse((self.out / "empty.jpg").exists())

    def test_os_error_from_codec_becomes_failure(self):
        def _codec(input_path, output_path, quality):
            raise PermissionError("read-only filesystem")

        outcome = convert_one(_upload(self.base, "a.heic"), self.out, 85, codec=_codec)

        self.assertIsInstance(outcome, ConversionFailure)
        self.assertEqual(outcome.reason_code, "IOError")
        self.assertNotIn(str(self.base), outcome.message)

    def test_unexpected_codec_exception_becomes_failure(self):
        def _codec(input_path, output_path, quality):
            Path(output_path).write_bytes(b"partial")
            raise RuntimeError("decoder crashed")

        outcome = convert_one(_upload(self.base, "crash.heic"), self.out, 85, codec=_codec)

        self.assertIsInstance(outcome, ConversionFailure)
        self.assertEqual(outcome.reason_code, "UnexpectedError")
        self.assertEqual(outcome.error.status_code, 500)
        self.assertFalse((self.out / "crash.jpg").exists())


class TestConvertBatch(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.base = Path(self._tmp.name)
        self.out = self.base / "out"

    def tearDown(self):
        self._tmp.cleanup()

    def test_failures_are_isolated_and_order_preserved(self):
        uploads = [
            _upload(self.base, "one.heic"),
            _upload(self.base, "two.png", png_bytes()),
            _upload(self.base, "three.heic"),
            _upload(self.base, "four.heic", png_bytes()),
            _upload(self.base, "five.heif"),
        ]

        result = convert_batch(uploads, 10, self.out, 85, codec=fake_codec)

        self.assertEqual(result.total, 5)
        self.assertEqual(result.succeeded, 3)
        self.assertEqual(len(result.errors), 2)
        self.assertEqual([o.original_name for o in result.outcomes], [u.original_name for u in uploads])
        self.assertEqual([e["index"] for e in result.errors], [1, 3])
        self.assertEqual([e["error_type"] for e in result.errors], ["InvalidInputError", "CodecError"])

    def test_zero_successes_is_a_valid_result(self):
        uploads = [_upload(self.base, "a.txt", b"x"), _upload(self.base, "b.txt", b"y")]

        result = convert_batch(uploads, 10, self.out, 85, codec=fake_codec)

        self.assertEqual(result.succeeded, 0)
        self.assertEqual(result.total, 2)
        self.assertIsNone(result.archive)

    def test_codec_crash_does_not_escape(self):
        def _codec(input_path, output_path, quality):
            if "bad" in Path(input_path).name:
                raise OSError("disk full")
            return fake_codec(input_path, output_path, quality)

        uploads = [_upload(self.base, "bad.heic"), _upload(self.base, "good.heic")]

        result = convert_batch(uploads, 10, self.out, 85, codec=_codec)

        self.assertEqual(result.succeeded, 1)
        self.assertTrue(result.outcomes[1].ok)

    def test_more_files_than_limit_is_a_caller_error(self):
        uploads = [_upload(self.base, f"{i}.heic") for i in range(3)]

        with self.assertRaises(ValueError):
            convert_batch(uploads, 2, self.out, 85, codec=fake_codec)
