"""Public package API for invoice export."""

from __future__ import annotations

from typing import Any, Dict, Optional

from .models import ExportOutcome, FidelityTier, RenderTarget


async def export_document(
    target: RenderTarget,
    file_name: str,
    tier: FidelityTier = FidelityTier.HIGH,
    sink: Optional[Any] = None,
) -> ExportOutcome:
    """Export one target with a short-lived browser session."""
    from .capture import BrowserSession, CaptureEngine
    from .orchestrator import ExportOrchestrator

    async with BrowserSession() as session:
        orchestrator = ExportOrchestrator(CaptureEngine(session.browser), sink=sink)
        return await orchestrator.export_document(target, file_name, tier)


def render_invoice_html(data: Dict[str, Any]) -> str:
    from .views import render_invoice_html as _render_invoice_html

    return _render_invoice_html(data)


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    from .server import run as _run

    _run(host, port)


__all__ = ["ExportOutcome", "FidelityTier", "RenderTarget", "export_document", "render_invoice_html", "run"]
