"""Value types shared by the export pipeline stages."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Optional, Tuple

from . import config

if TYPE_CHECKING:
    from PIL import Image


class FidelityTier(str, Enum):
    HIGH = "high"
    LOW = "low"

    @classmethod
    def parse(cls, raw: object, default: Optional["FidelityTier"] = None) -> "FidelityTier":
        if raw is None and default is not None:
            return default
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown fidelity tier {raw!r}; expected 'high' or 'low'.") from None


class ImageEncoding(str, Enum):
    PNG = "PNG"
    JPEG = "JPEG"


class Orientation(str, Enum):
    PORTRAIT = "portrait"
    LANDSCAPE = "landscape"


@dataclass(frozen=True)
class TierProfile:
    scale: float
    encoding: ImageEncoding
    jpeg_quality: int
    file_suffix: str


TIER_PROFILES = {
    FidelityTier.HIGH: TierProfile(
        scale=config.HIGH_SCALE,
        encoding=ImageEncoding.PNG,
        jpeg_quality=100,
        file_suffix="",
    ),
    FidelityTier.LOW: TierProfile(
        scale=config.LOW_SCALE,
        encoding=ImageEncoding.JPEG,
        jpeg_quality=config.LOW_JPEG_QUALITY,
        file_suffix="-Web",
    ),
}


def profile_for(tier: FidelityTier) -> TierProfile:
    return TIER_PROFILES[FidelityTier(tier)]


@dataclass(frozen=True)
class RenderTarget:
    """A laid-out visual subtree: an HTML document or URL plus a CSS selector."""

    selector: str
    html: Optional[str] = None
    url: Optional[str] = None
    key: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.selector or not self.selector.strip():
            raise ValueError("RenderTarget requires a selector.")
        if (self.html is None) == (self.url is None):
            raise ValueError("RenderTarget requires exactly one of 'html' or 'url'.")

    @property
    def identity(self) -> str:
        if self.key:
            return self.key
        source = self.url if self.url is not None else self.html
        digest = hashlib.sha1(f"{source}\x00{self.selector}".encode("utf-8")).hexdigest()
        return f"{self.selector}@{digest[:16]}"


@dataclass
class CaptureResult:
    image: "Image.Image"
    scale: float
    encoding: ImageEncoding

    @property
    def width(self) -> int:
        return self.image.width

    @property
    def height(self) -> int:
        return self.image.height

    @property
    def size(self) -> Tuple[int, int]:
        return self.width, self.height


@dataclass(frozen=True)
class PageFrame:
    width_mm: float
    height_mm: float


A4 = PageFrame(210.0, 297.0)
DEFAULT_PAGE_FRAME = PageFrame(config.PAGE_WIDTH_MM, config.PAGE_HEIGHT_MM)


@dataclass(frozen=True)
class PageSlice:
    index: int
    offset_mm: float
    visible_mm: float


@dataclass(frozen=True)
class PageLayout:
    frame: PageFrame
    scaled_height_mm: float
    orientation: Orientation
    slices: Tuple[PageSlice, ...]

    @property
    def page_count(self) -> int:
        return len(self.slices)


@dataclass(frozen=True)
class ExportArtifact:
    file_name: str
    data: bytes = field(repr=False)
    page_count: int
    tier: FidelityTier
    content_type: str = "application/pdf"

    @property
    def size(self) -> int:
        return len(self.data)


class ExportStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class ExportOutcome:
    status: ExportStatus
    artifact: Optional[ExportArtifact] = None
    error: Optional[Exception] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is ExportStatus.SUCCESS
