"""PDF assembly of a captured bitmap flowed across pages."""

from __future__ import annotations

import io
from typing import Optional

from fpdf import FPDF  # type: ignore

from .errors import ExportError, HostSaveFailure, SerializationFailure
from .logging import get_logger
from .models import (
    CaptureResult,
    ExportArtifact,
    FidelityTier,
    ImageEncoding,
    Orientation,
    PageLayout,
    profile_for,
)
from .sinks import DownloadSink

logger = get_logger(__name__)

PDF_CREATOR = "invoice-export"


class DocumentAssembler:
    def __init__(self, layout: PageLayout, capture: CaptureResult, tier: FidelityTier, title: str = "") -> None:
        self.layout = layout
        self.capture = capture
        self.profile = profile_for(tier)

        frame = layout.frame
        # Landscape swaps the frame's width and height for every page.
        self.pdf = FPDF(
            orientation="L" if layout.orientation is Orientation.LANDSCAPE else "P",
            unit="mm",
            format=(frame.width_mm, frame.height_mm),
        )
        self.pdf.set_auto_page_break(False)
        self.pdf.set_compression(True)
        self.pdf.set_creator(PDF_CREATOR)
        if title:
            self.pdf.set_title(title)

    def encode_bitmap(self) -> io.BytesIO:
        buffer = io.BytesIO()
        image = self.capture.image
        if self.capture.encoding is ImageEncoding.JPEG:
            image.convert("RGB").save(buffer, format="JPEG", quality=self.profile.jpeg_quality, optimize=True)
        else:
            image.save(buffer, format="PNG")
        buffer.seek(0)
        return buffer

    def build(self) -> FPDF:
        bitmap = self.encode_bitmap()
        width = self.layout.frame.width_mm
        height = self.layout.scaled_height_mm
        for page_slice in self.layout.slices:
            self.pdf.add_page()
            # The whole bitmap goes on every page; the page box clips it to this slice.
            bitmap.seek(0)
            self.pdf.image(bitmap, x=0, y=page_slice.offset_mm, w=width, h=height)
        return self.pdf

    def render(self) -> bytes:
        return bytes(self.build().output())


def assemble(
    layout: PageLayout,
    capture: CaptureResult,
    file_name: str,
    tier: FidelityTier,
    sink: Optional[DownloadSink] = None,
) -> ExportArtifact:
    try:
        data = DocumentAssembler(layout, capture, tier, title=file_name).render()
    except ExportError:
        raise
    except Exception as exc:
        raise SerializationFailure(f"Could not assemble {file_name}: {exc}") from exc

    artifact = ExportArtifact(
        file_name=file_name,
        data=data,
        page_count=layout.page_count,
        tier=FidelityTier(tier),
    )
    logger.info(
        "Assembled document",
        file_name=file_name,
        pages=artifact.page_count,
        orientation=layout.orientation.value,
        size=artifact.size,
    )

    if sink is not None:
        try:
            sink.deliver(artifact)
        except ExportError:
            raise
        except Exception as exc:
            raise HostSaveFailure(f"Download of {file_name} was rejected: {exc}") from exc
    return artifact
