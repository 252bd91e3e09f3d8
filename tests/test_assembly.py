import os
import tempfile
import unittest
from importlib import util as importlib_util
from unittest.mock import patch

from invoice_export.errors import HostSaveFailure, SerializationFailure
from invoice_export.models import A4, CaptureResult, FidelityTier, ImageEncoding
from invoice_export.pagination import paginate
from invoice_export.sinks import DirectorySink, MemorySink

FPDF_AVAILABLE = importlib_util.find_spec("fpdf") is not None
PIL_AVAILABLE = importlib_util.find_spec("PIL") is not None
if FPDF_AVAILABLE and PIL_AVAILABLE:
    from fpdf import FPDF
    from PIL import Image

    from invoice_export.assembly import DocumentAssembler, assemble


def make_capture(width: int, height: int, encoding: ImageEncoding = ImageEncoding.PNG) -> "CaptureResult":
    image = Image.new("RGB", (width, height), (255, 255, 255))
    for y in range(0, height, 10):
        for x in range(width):
            image.putpixel((x, y), (x % 256, y % 256, 90))
    return CaptureResult(image=image, scale=1.0, encoding=encoding)


class RejectingSink:
    def deliver(self, artifact) -> None:
        raise PermissionError("download blocked")


@unittest.skipUnless(FPDF_AVAILABLE and PIL_AVAILABLE, "fpdf2 and Pillow are required")
class AssemblyTests(unittest.TestCase):
    def test_single_page_document(self) -> None:
        capture = make_capture(100, 140)
        layout = paginate(capture.width, capture.height, A4)

        pdf = DocumentAssembler(layout, capture, FidelityTier.HIGH).build()

        self.assertEqual(pdf.page, 1)
        self.assertAlmostEqual(pdf.w, 210.0, places=3)
        self.assertAlmostEqual(pdf.h, 297.0, places=3)

    def test_tall_content_spans_pages(self) -> None:
        capture = make_capture(100, 200)
        layout = paginate(capture.width, capture.height, A4)

        pdf = DocumentAssembler(layout, capture, FidelityTier.HIGH).build()

        self.assertEqual(pdf.page, 2)

    def test_each_page_shows_whole_bitmap_shifted_up_by_page_height(self) -> None:
        capture = make_capture(1000, 2000)
        layout = paginate(capture.width, capture.height, A4)

        with patch.object(FPDF, "image", autospec=True, side_effect=FPDF.image) as image:
            data = DocumentAssembler(layout, capture, FidelityTier.HIGH).render()

        placements = [(call.kwargs["x"], call.kwargs["y"], call.kwargs["w"], call.kwargs["h"]) for call in image.call_args_list]
        self.assertEqual(len(placements), 2)
        for (x, y, w, h), expected_y in zip(placements, [0.0, -297.0]):
            self.assertEqual(x, 0)
            self.assertAlmostEqual(y, expected_y, places=6)
            self.assertAlmostEqual(w, 210.0, places=6)
            self.assertAlmostEqual(h, 420.0, places=6)
        self.assertEqual(data.count(b"/Subtype /Image"), 1)

    def test_wide_content_is_landscape(self) -> None:
        capture = make_capture(200, 100)
        layout = paginate(capture.width, capture.height, A4)

        pdf = DocumentAssembler(layout, capture, FidelityTier.HIGH).build()

        self.assertAlmostEqual(pdf.w, 297.0, places=3)
        self.assertAlmostEqual(pdf.h, 210.0, places=3)

    def test_low_tier_embeds_jpeg(self) -> None:
        capture = make_capture(120, 160, ImageEncoding.JPEG)
        layout = paginate(capture.width, capture.height, A4)

        artifact = assemble(layout, capture, "invoice-Web.pdf", FidelityTier.LOW)

        self.assertTrue(artifact.data.startswith(b"%PDF"))
        self.assertIn(b"/DCTDecode", artifact.data)
        self.assertEqual(artifact.file_name, "invoice-Web.pdf")
        self.assertEqual(artifact.size, len(artifact.data))

    def test_high_tier_embeds_lossless_image(self) -> None:
        capture = make_capture(120, 160)
        layout = paginate(capture.width, capture.height, A4)

        artifact = assemble(layout, capture, "invoice.pdf", FidelityTier.HIGH)

        self.assertNotIn(b"/DCTDecode", artifact.data)
        self.assertIn(b"/FlateDecode", artifact.data)

    def test_delivers_to_sink(self) -> None:
        capture = make_capture(100, 300)
        layout = paginate(capture.width, capture.height, A4)
        sink = MemorySink()

        artifact = assemble(layout, capture, "invoice.pdf", FidelityTier.HIGH, sink)

        self.assertIs(sink.last, artifact)
        self.assertEqual(artifact.page_count, 3)

    def test_rejected_download_is_a_save_failure(self) -> None:
        capture = make_capture(100, 100)
        layout = paginate(capture.width, capture.height, A4)

        with self.assertRaises(HostSaveFailure):
            assemble(layout, capture, "invoice.pdf", FidelityTier.HIGH, RejectingSink())

    def test_encoding_error_is_a_serialization_failure(self) -> None:
        capture = make_capture(100, 100)
        layout = paginate(capture.width, capture.height, A4)
        capture.image.close()
        capture.image = None

        sink = MemorySink()
        with self.assertRaises(SerializationFailure):
            assemble(layout, capture, "invoice.pdf", FidelityTier.HIGH, sink)
        self.assertEqual(sink.artifacts, [])


@unittest.skipUnless(FPDF_AVAILABLE and PIL_AVAILABLE, "fpdf2 and Pillow are required")
class DirectorySinkTests(unittest.TestCase):
    def test_writes_complete_file_without_leftovers(self) -> None:
        capture = make_capture(50, 50)
        layout = paginate(capture.width, capture.height, A4)

        with tempfile.TemporaryDirectory() as directory:
            sink = DirectorySink(directory)
            artifact = assemble(layout, capture, "Cuenta de Cobro-7 ACME.pdf", FidelityTier.HIGH, sink)

            self.assertEqual(os.listdir(directory), ["Cuenta de Cobro-7 ACME.pdf"])
            with open(sink.path_for(artifact), "rb") as handle:
                self.assertEqual(handle.read(), artifact.data)

    def test_unwritable_directory_is_a_save_failure(self) -> None:
        capture = make_capture(50, 50)
        layout = paginate(capture.width, capture.height, A4)

        with tempfile.NamedTemporaryFile() as not_a_directory:
            sink = DirectorySink(not_a_directory.name)
            with self.assertRaises(HostSaveFailure):
                assemble(layout, capture, "invoice.pdf", FidelityTier.HIGH, sink)

    def test_file_names_are_sanitized(self) -> None:
        sink = DirectorySink("/tmp/exports")

        class Named:
            file_name = "../etc/pass:wd.pdf"

        self.assertEqual(sink.path_for(Named()), os.path.join("/tmp/exports", "_etc_pass_wd.pdf"))


if __name__ == "__main__":
    unittest.main()
