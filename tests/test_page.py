import unittest

from invoice_export.errors import TargetNotFound
from invoice_export.models import ExportOutcome, ExportStatus, FidelityTier
from invoice_export.page import InvoicePage

PAYLOAD = {
    "invoice": {"id": "7", "invoiceNumber": "0007", "date": "2025-01-31", "lineItems": []},
    "client": {"name": "ACME"},
}


class RecordingOrchestrator:
    def __init__(self) -> None:
        self.calls = []

    async def export_document(self, target, file_name, tier=FidelityTier.HIGH, sink=None):
        self.calls.append((target, file_name, tier))
        return ExportOutcome(status=ExportStatus.SUCCESS, message="ok")


def loader_for(payload):
    async def loader():
        return payload

    return loader


class InvoicePageTests(unittest.IsolatedAsyncioTestCase):
    async def test_renders_without_exporting_when_not_requested(self) -> None:
        orchestrator = RecordingOrchestrator()
        page = InvoicePage(orchestrator, loader_for(PAYLOAD), "")

        outcome = await page.open()

        self.assertIsNone(outcome)
        self.assertIsNone(page.error)
        self.assertIn("0007", page.html)
        self.assertEqual(orchestrator.calls, [])

    async def test_navigation_flag_exports_once_after_render(self) -> None:
        orchestrator = RecordingOrchestrator()
        page = InvoicePage(orchestrator, loader_for(PAYLOAD), "download=true&quality=low", settle_delay_ms=0)

        outcome = await page.open()

        self.assertTrue(outcome.ok)
        self.assertEqual(len(orchestrator.calls), 1)
        target, file_name, tier = orchestrator.calls[0]
        self.assertIs(target, page.target)
        self.assertTrue(file_name.endswith("-0007 ACME"))
        self.assertIs(tier, FidelityTier.LOW)
        self.assertTrue(page.auto_exporter.triggered)

    async def test_load_failure_skips_auto_export(self) -> None:
        async def failing_loader():
            raise ConnectionError("database unavailable")

        orchestrator = RecordingOrchestrator()
        page = InvoicePage(orchestrator, failing_loader, "download=true", settle_delay_ms=0)

        with self.assertLogs("invoice_export.page", level="ERROR"):
            outcome = await page.open()

        self.assertIsNone(outcome)
        self.assertIsNotNone(page.error)
        self.assertEqual(orchestrator.calls, [])

    async def test_missing_invoice_is_reported(self) -> None:
        page = InvoicePage(RecordingOrchestrator(), loader_for(None), "download=true", settle_delay_ms=0)

        await page.open()

        self.assertEqual(page.error, "Invoice not found.")
        self.assertIsNone(page.target)

    async def test_manual_download_before_render_fails_cleanly(self) -> None:
        page = InvoicePage(RecordingOrchestrator(), loader_for(PAYLOAD))

        outcome = await page.download()

        self.assertIs(outcome.status, ExportStatus.FAILED)
        self.assertIsInstance(outcome.error, TargetNotFound)

    async def test_manual_download_uses_requested_tier(self) -> None:
        orchestrator = RecordingOrchestrator()
        page = InvoicePage(orchestrator, loader_for(PAYLOAD))
        await page.open()

        await page.download(FidelityTier.LOW)

        self.assertIs(orchestrator.calls[0][2], FidelityTier.LOW)


if __name__ == "__main__":
    unittest.main()
