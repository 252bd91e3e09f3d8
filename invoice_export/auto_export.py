"""One-shot export triggered by a page's navigation flag."""

from __future__ import annotations

import asyncio
from typing import Mapping, Optional, Sequence, Union
from urllib.parse import parse_qs

from . import config
from .logging import get_logger
from .models import ExportOutcome, FidelityTier, RenderTarget
from .orchestrator import ExportOrchestrator

logger = get_logger(__name__)

DOWNLOAD_FLAG = "download"
QUALITY_PARAM = "quality"

QueryLike = Union[str, Mapping[str, Union[str, Sequence[str]]]]


def _first(query: QueryLike, name: str) -> Optional[str]:
    params = parse_qs(query.lstrip("?")) if isinstance(query, str) else query
    value = params.get(name)
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value[0] if value else None


def auto_export_requested(query: QueryLike) -> bool:
    return (_first(query, DOWNLOAD_FLAG) or "").strip().lower() == "true"


def requested_tier(query: QueryLike, default: FidelityTier = FidelityTier.HIGH) -> FidelityTier:
    raw = _first(query, QUALITY_PARAM)
    if raw is None or not raw.strip():
        return default
    return FidelityTier.parse(raw)


class AutoExporter:
    """Exports once per page load, after the data has loaded and rendered.

    The settle delay runs after both signals so that layout and paint have
    finished before the capture starts.
    """

    def __init__(
        self,
        orchestrator: ExportOrchestrator,
        target: Optional[RenderTarget],
        file_name: str,
        tier: FidelityTier = FidelityTier.HIGH,
        settle_delay_ms: int = config.AUTO_EXPORT_SETTLE_MS,
    ) -> None:
        self.orchestrator = orchestrator
        self.target = target
        self.file_name = file_name
        self.tier = tier
        self.settle_delay_ms = settle_delay_ms
        self.data_loaded = asyncio.Event()
        self.rendered = asyncio.Event()
        self._triggered = False

    @property
    def triggered(self) -> bool:
        return self._triggered

    def mark_data_loaded(self) -> None:
        self.data_loaded.set()

    def mark_rendered(self, target: Optional[RenderTarget] = None) -> None:
        if target is not None:
            self.target = target
        self.rendered.set()

    async def run(self) -> Optional[ExportOutcome]:
        if self._triggered:
            return None
        await self.data_loaded.wait()
        await self.rendered.wait()
        if self.settle_delay_ms:
            await asyncio.sleep(self.settle_delay_ms / 1000.0)
        # Re-checked after the awaits: a concurrent run() may have fired meanwhile.
        if self._triggered:
            return None
        if self.target is None:
            raise RuntimeError("Rendering finished without a target to export.")
        self._triggered = True
        logger.info("Auto-export started", target=self.target.identity)
        return await self.orchestrator.export_document(self.target, self.file_name, self.tier)
