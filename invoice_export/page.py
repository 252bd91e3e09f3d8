"""Invoice preview page: loads display data, renders it and exports it."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Mapping, Optional

from . import config
from .auto_export import AutoExporter, QueryLike, auto_export_requested, requested_tier
from .errors import TargetNotFound
from .logging import get_logger
from .models import ExportOutcome, ExportStatus, FidelityTier, RenderTarget
from .orchestrator import ExportOrchestrator
from .views import InvoiceView

logger = get_logger(__name__)

Loader = Callable[[], Awaitable[Optional[Mapping[str, Any]]]]


class InvoicePage:
    def __init__(
        self,
        orchestrator: ExportOrchestrator,
        loader: Loader,
        query: QueryLike = "",
        settle_delay_ms: int = config.AUTO_EXPORT_SETTLE_MS,
    ) -> None:
        self.orchestrator = orchestrator
        self.loader = loader
        self.auto_requested = auto_export_requested(query)
        self.auto_tier = requested_tier(query)
        self.settle_delay_ms = settle_delay_ms
        self.view: Optional[InvoiceView] = None
        self.target: Optional[RenderTarget] = None
        self.error: Optional[str] = None
        self.auto_exporter: Optional[AutoExporter] = None

    @property
    def html(self) -> Optional[str]:
        return self.target.html if self.target is not None else None

    async def open(self) -> Optional[ExportOutcome]:
        """Load and render the invoice; returns the auto-export outcome if one ran."""
        auto_task: Optional[asyncio.Task] = None
        try:
            data = await self.loader()
        except Exception:
            logger.exception("Loading invoice data failed")
            self.error = "Error loading the invoice details."
            return None

        if not data or not data.get("invoice"):
            self.error = "Invoice not found."
            return None

        self.view = InvoiceView(data)
        if self.auto_requested:
            self.auto_exporter = AutoExporter(
                self.orchestrator,
                None,
                self.view.file_base_name(),
                self.auto_tier,
                settle_delay_ms=self.settle_delay_ms,
            )
            auto_task = asyncio.create_task(self.auto_exporter.run())
            self.auto_exporter.mark_data_loaded()

        self.target = self.view.render_target()
        if auto_task is None:
            return None

        self.auto_exporter.mark_rendered(self.target)
        return await auto_task

    async def download(self, tier: FidelityTier = FidelityTier.HIGH) -> ExportOutcome:
        if self.target is None or self.view is None:
            error = TargetNotFound("The invoice has not been rendered.")
            return ExportOutcome(status=ExportStatus.FAILED, error=error, message=error.user_message)
        return await self.orchestrator.export_document(self.target, self.view.file_base_name(), tier)
