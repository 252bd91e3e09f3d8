"""Entry point that runs capture, pagination and assembly for one export."""

from __future__ import annotations

import asyncio
from enum import Enum
from typing import Dict, Optional, Protocol

from .assembly import assemble
from .errors import ExportError, TargetNotFound
from .logging import get_logger
from .models import (
    DEFAULT_PAGE_FRAME,
    CaptureResult,
    ExportOutcome,
    ExportStatus,
    FidelityTier,
    ImageEncoding,
    PageFrame,
    RenderTarget,
    profile_for,
)
from .pagination import paginate
from .sinks import DownloadSink

logger = get_logger(__name__)

IN_PROGRESS_MESSAGE = "An export of this document is already in progress."


class ExportState(str, Enum):
    IDLE = "idle"
    CAPTURING = "capturing"
    PAGINATING = "paginating"
    ASSEMBLING = "assembling"
    DONE = "done"
    FAILED = "failed"


ACCEPTING_STATES = frozenset({ExportState.IDLE, ExportState.DONE, ExportState.FAILED})


class Capturer(Protocol):
    async def capture(self, target: RenderTarget, scale: float, encoding: ImageEncoding) -> CaptureResult:
        ...


def export_file_name(base_name: str, tier: FidelityTier) -> str:
    name = base_name.strip()
    if name.lower().endswith(".pdf"):
        name = name[:-4].rstrip()
    return f"{name or 'document'}{profile_for(tier).file_suffix}.pdf"


class ExportOrchestrator:
    def __init__(
        self,
        capture_engine: Capturer,
        sink: Optional[DownloadSink] = None,
        frame: PageFrame = DEFAULT_PAGE_FRAME,
    ) -> None:
        self.capture_engine = capture_engine
        self.sink = sink
        self.frame = frame
        # Only in-flight targets are tracked; done and failed accept new work like idle.
        self._states: Dict[str, ExportState] = {}

    def state_of(self, target: RenderTarget) -> ExportState:
        return self._states.get(target.identity, ExportState.IDLE)

    def is_busy(self, target: RenderTarget) -> bool:
        return self.state_of(target) not in ACCEPTING_STATES

    @property
    def in_flight(self) -> int:
        return len(self._states)

    async def export_document(
        self,
        target: RenderTarget,
        file_name: str,
        tier: FidelityTier = FidelityTier.HIGH,
        sink: Optional[DownloadSink] = None,
    ) -> ExportOutcome:
        if not isinstance(target, RenderTarget):
            error = TargetNotFound(f"Expected a RenderTarget, got {type(target).__name__}.")
            logger.warning("Export rejected", code=error.code, detail=error.detail)
            return ExportOutcome(status=ExportStatus.FAILED, error=error, message=error.user_message)

        key = target.identity
        if self.is_busy(target):
            logger.info("Export already running", target=key, state=self.state_of(target).value)
            return ExportOutcome(status=ExportStatus.SKIPPED, message=IN_PROGRESS_MESSAGE)

        # No await between the check above and claiming the target.
        self._states[key] = ExportState.CAPTURING
        state = ExportState.FAILED
        try:
            tier = FidelityTier(tier)
            profile = profile_for(tier)
            name = export_file_name(file_name, tier)
            logger.info("Exporting document", target=key, file_name=name, tier=tier.value)

            capture = await self.capture_engine.capture(target, profile.scale, profile.encoding)

            self._states[key] = ExportState.PAGINATING
            layout = paginate(capture.width, capture.height, self.frame)

            self._states[key] = ExportState.ASSEMBLING
            artifact = await asyncio.to_thread(assemble, layout, capture, name, tier, sink or self.sink)
            state = ExportState.DONE
        except ExportError as exc:
            logger.warning("Export failed", target=key, code=exc.code, detail=exc.detail)
            return ExportOutcome(status=ExportStatus.FAILED, error=exc, message=exc.user_message)
        except Exception as exc:
            logger.exception("Unexpected error while exporting", target=key)
            return ExportOutcome(status=ExportStatus.FAILED, error=exc, message=ExportError.user_message)
        finally:
            self._states.pop(key, None)
            logger.debug("Export finished", target=key, state=state.value)

        return ExportOutcome(status=ExportStatus.SUCCESS, artifact=artifact, message=f"{artifact.file_name} is ready.")
