"""Helpers for flowing a captured bitmap across fixed-size pages."""

from __future__ import annotations

import math
from typing import List

from .models import DEFAULT_PAGE_FRAME, Orientation, PageFrame, PageLayout, PageSlice


def scaled_height_mm(width_px: int, height_px: int, frame: PageFrame = DEFAULT_PAGE_FRAME) -> float:
    """Height of the bitmap once it is stretched to fill the page width."""
    if width_px <= 0 or height_px <= 0:
        raise ValueError(f"Bitmap must have positive dimensions, got {width_px}x{height_px}.")
    return height_px * frame.width_mm / width_px


def choose_orientation(width_px: int, height_px: int, frame: PageFrame = DEFAULT_PAGE_FRAME) -> Orientation:
    # Decided once from the unpaginated height, so any multi-page flow is portrait.
    if frame.width_mm > scaled_height_mm(width_px, height_px, frame):
        return Orientation.LANDSCAPE
    return Orientation.PORTRAIT


def estimate_page_count(width_px: int, height_px: int, frame: PageFrame = DEFAULT_PAGE_FRAME) -> int:
    total = scaled_height_mm(width_px, height_px, frame)
    if total <= frame.height_mm:
        return 1
    return math.ceil(total / frame.height_mm)


def paginate(width_px: int, height_px: int, frame: PageFrame = DEFAULT_PAGE_FRAME) -> PageLayout:
    total = scaled_height_mm(width_px, height_px, frame)
    page_h = frame.height_mm
    count = estimate_page_count(width_px, height_px, frame)

    slices: List[PageSlice] = []
    for index in range(count):
        consumed = index * page_h
        slices.append(
            PageSlice(
                index=index,
                offset_mm=-consumed if index else 0.0,
                visible_mm=min(page_h, total - consumed),
            )
        )

    return PageLayout(
        frame=frame,
        scaled_height_mm=total,
        orientation=choose_orientation(width_px, height_px, frame),
        slices=tuple(slices),
    )
