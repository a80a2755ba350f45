import hashlib
import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from application.services.attachments import (
    generate_attachment_id,
    materialize,
    resolve_attachment_id,
    resolve_filename,
)
from application.services.header_decoder import reassemble_parameters
from domain.errors import ConfigurationError, MaterializationError
from domain.models import HeaderFields, Message, MimeNode
from infrastructure.filesystem.storage import AttachmentStorage, sanitize_filename


def _headers() -> HeaderFields:
    return HeaderFields(
        date="2024-05-14 10:00:00",
        subject="Informe",
        message_id="<abc@example.com>",
        from_address="ana@example.com",
    )


class TestAttachmentId(unittest.TestCase):
    def test_explicit_id_is_trimmed(self) -> None:
        node = MimeNode(type="image", subtype="png", disposition_id=" <logo@example.com> ")
        self.assertEqual(resolve_attachment_id(node, _headers(), "2"), "logo@example.com")

    def test_no_name_means_not_an_attachment(self) -> None:
        node = MimeNode(type="application", subtype="pdf", parameters={"charset": "utf-8"})
        self.assertIsNone(resolve_attachment_id(node, _headers(), "2"))

    def test_derived_id_is_md5_of_message_metadata(self) -> None:
        node = MimeNode(type="application", subtype="pdf", parameters={"name": "a.pdf"})
        expected = hashlib.md5(
            b"2024-05-14 10:00:00-ana@example.com-Informe-1.2-<abc@example.com>"
        ).hexdigest()
        self.assertEqual(resolve_attachment_id(node, _headers(), "1.2"), expected)
        self.assertEqual(generate_attachment_id(_headers(), "1.2"), expected)

    def test_derived_id_depends_on_part_path_not_content(self) -> None:
        node = MimeNode(type="application", subtype="pdf", parameters={"filename": "a.pdf"})
        self.assertNotEqual(
            resolve_attachment_id(node, _headers(), "2"),
            resolve_attachment_id(node, _headers(), "3"),
        )

    def test_missing_fields_count_as_empty(self) -> None:
        expected = hashlib.md5(b"----<x>").hexdigest()
        self.assertEqual(generate_attachment_id(HeaderFields(message_id="<x>"), ""), expected)


class TestResolveFilename(unittest.TestCase):
    def test_prefers_filename_over_name(self) -> None:
        node = MimeNode(type="application", subtype="pdf", parameters={"filename": "f.pdf", "name": "n.pdf"})
        self.assertEqual(resolve_filename(node, "id1"), "f.pdf")

    def test_falls_back_to_name(self) -> None:
        node = MimeNode(type="application", subtype="pdf", parameters={"name": "n.pdf"})
        self.assertEqual(resolve_filename(node, "id1"), "n.pdf")

    def test_synthesizes_from_id_and_subtype(self) -> None:
        node = MimeNode(type="image", subtype="png")
        self.assertEqual(resolve_filename(node, "id1"), "id1.png")

    def test_decodes_encoded_words_and_rfc2231(self) -> None:
        node = MimeNode(type="application", subtype="pdf", parameters={"filename": "=?utf-8?Q?caf=C3=A9.pdf?="})
        self.assertEqual(resolve_filename(node, "id1"), "café.pdf")
        node = MimeNode(type="application", subtype="pdf", parameters={"filename": "utf-8''caf%C3%A9.pdf"})
        self.assertEqual(resolve_filename(node, "id1"), "café.pdf")

    def test_extended_filename_wins_over_plain_fallback(self) -> None:
        params = reassemble_parameters([
            ("filename", "informe.pdf"),
            ("filename*", "iso-8859-1''Informe_a%F1o.pdf"),
        ])
        node = MimeNode(type="application", subtype="pdf", parameters=params)
        self.assertEqual(resolve_filename(node, "id1"), "Informe_año.pdf")


class TestSanitizeFilename(unittest.TestCase):
    def test_strips_punctuation_and_spaces(self) -> None:
        self.assertEqual(sanitize_filename("my report (final)!.pdf"), "my_report_final.pdf")

    def test_keeps_cyrillic(self) -> None:
        self.assertEqual(sanitize_filename("Отчет за май.docx"), "Отчет_за_май.docx")

    def test_removes_path_separators(self) -> None:
        cleaned = sanitize_filename("..\\../etc/passwd")
        self.assertNotIn("/", cleaned)
        self.assertNotIn("\\", cleaned)
        self.assertEqual(cleaned, "....etcpasswd")

    def test_collapses_and_trims_underscores(self) -> None:
        self.assertEqual(sanitize_filename("__a   ___b__"), "a_b")


class TestAttachmentStorage(unittest.TestCase):
    def test_rejects_missing_directory(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            with self.assertRaises(ConfigurationError):
                AttachmentStorage(Path(td) / "missing")

    def test_rejects_regular_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            fp = Path(td) / "file.txt"
            fp.write_text("x", encoding="utf-8")
            with self.assertRaises(ConfigurationError):
                AttachmentStorage(fp)

    def test_save_uses_message_date_layout(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            storage = AttachmentStorage(Path(td))
            fp = storage.save(
                message_id="42",
                attachment_id="abc",
                file_name="my report (final)!.pdf",
                message_date="2019-01-31 23:59:59",
                data=b"%PDF",
            )
            self.assertTrue(fp.is_absolute())
            self.assertEqual(fp.parent, Path(td).resolve() / "2019" / "01")
            self.assertEqual(fp.name, "42_abc_my_report_final.pdf")
            self.assertEqual(fp.read_bytes(), b"%PDF")

    def test_save_overwrites_existing_file(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            storage = AttachmentStorage(Path(td))
            kwargs = dict(message_id="1", attachment_id="a", file_name="x.txt", message_date="2024-05-14 10:00:00")
            first = storage.save(data=b"one", **kwargs)
            second = storage.save(data=b"two", **kwargs)
            self.assertEqual(first, second)
            self.assertEqual(second.read_bytes(), b"two")

    def test_accepts_rfc822_date(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            storage = AttachmentStorage(Path(td))
            self.assertEqual(storage.target_dir("Tue, 14 May 2024 10:00:00 +0000").name, "05")

    def test_long_names_are_truncated(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            storage = AttachmentStorage(Path(td))
            basename = storage.build_basename("1", "a" * 32, "ж" * 300 + ".pdf")
            self.assertLessEqual(len(basename), 250)
            self.assertLessEqual(len(basename.encode("utf-8")), 250)
            fp = storage.save(message_id="1", attachment_id="a", file_name="x" * 400,
                              message_date="2024-05-14 10:00:00", data=b"")
            self.assertLessEqual(len(fp.name), 250)

    def test_write_failure_is_a_materialization_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            storage = AttachmentStorage(Path(td))
            target = storage.target_dir("2024-05-14 10:00:00") / storage.build_basename("1", "a", "x.txt")
            os.makedirs(target)
            with self.assertRaises(MaterializationError):
                storage.save(message_id="1", attachment_id="a", file_name="x.txt",
                             message_date="2024-05-14 10:00:00", data=b"x")

    def test_bad_date_is_a_materialization_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            storage = AttachmentStorage(Path(td))
            with self.assertRaises(MaterializationError):
                storage.save(message_id="1", attachment_id="a", file_name="x.txt",
                             message_date="not a date", data=b"x")

    def test_removed_directory_is_a_configuration_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            base = Path(td) / "adjuntos"
            base.mkdir()
            storage = AttachmentStorage(base)
            base.rmdir()
            with self.assertRaises(ConfigurationError):
                storage.save(message_id="1", attachment_id="a", file_name="x.txt",
                             message_date="2024-05-14 10:00:00", data=b"x")

    def test_directory_that_lost_write_permission_is_a_configuration_error(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            storage = AttachmentStorage(Path(td))
            # root ignora los bits de permiso, así que se simula la pérdida
            with mock.patch("infrastructure.filesystem.storage.os.access", return_value=False):
                with self.assertRaises(ConfigurationError):
                    storage.save(message_id="1", attachment_id="a", file_name="x.txt",
                                 message_date="2024-05-14 10:00:00", data=b"x")
            self.assertFalse((Path(td) / "2024").exists())


class TestMaterialize(unittest.TestCase):
    def test_without_storage_nothing_is_written(self) -> None:
        message = Message(id="7", date="2024-05-14 10:00:00")
        self.assertIsNone(materialize(message, "a", "x.txt", b"x", None))

    def test_with_storage_returns_path(self) -> None:
        with tempfile.TemporaryDirectory() as td:
            message = Message(id="7", date="2024-05-14 10:00:00")
            path = materialize(message, "a", "x.txt", b"x", AttachmentStorage(Path(td)))
            self.assertTrue(path.endswith(os.path.join("2024", "05", "7_a_x.txt")))


if __name__ == "__main__":
    unittest.main()
