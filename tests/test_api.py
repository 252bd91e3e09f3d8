import errno
import json
import unittest

from invoice_export.errors import EmptyCapture, SerializationFailure, TargetNotFound
from invoice_export.models import ExportOutcome, ExportStatus, FidelityTier
from invoice_export.net import is_client_disconnect
from invoice_export.server import (
    content_disposition,
    outcome_error,
    validate_export_payload,
    validate_invoice_payload,
)


class ExportPayloadValidationTests(unittest.TestCase):
    def _json_bytes(self, payload: object) -> bytes:
        return json.dumps(payload).encode("utf-8")

    def test_accepts_valid_payload(self) -> None:
        request, error = validate_export_payload(
            self._json_bytes({"html": "<div id='x'></div>", "selector": "#x", "file_name": "a.pdf", "tier": "low"})
        )

        self.assertIsNone(error)
        assert request is not None
        target, file_name, tier = request
        self.assertEqual(target.selector, "#x")
        self.assertEqual(file_name, "a.pdf")
        self.assertIs(tier, FidelityTier.LOW)

    def test_defaults_tier_and_file_name(self) -> None:
        request, error = validate_export_payload(self._json_bytes({"url": "http://localhost/i/1", "selector": "main"}))

        self.assertIsNone(error)
        assert request is not None
        self.assertEqual(request[1], "document.pdf")
        self.assertIs(request[2], FidelityTier.HIGH)

    def test_rejects_invalid_utf8(self) -> None:
        _, error = validate_export_payload(b"\xff")

        assert error is not None
        self.assertEqual(error[0], 400)
        self.assertEqual(error[1]["error"], "invalid_encoding")

    def test_rejects_invalid_json(self) -> None:
        _, error = validate_export_payload(b'{"html":')

        assert error is not None
        self.assertEqual(error[0], 400)
        self.assertEqual(error[1]["error"], "invalid_json")

    def test_rejects_non_object_root(self) -> None:
        _, error = validate_export_payload(self._json_bytes(["bad-root"]))

        assert error is not None
        self.assertEqual(error[1]["error"], "invalid_payload")

    def test_requires_exactly_one_source(self) -> None:
        _, both = validate_export_payload(self._json_bytes({"html": "x", "url": "http://x", "selector": "a"}))
        _, neither = validate_export_payload(self._json_bytes({"selector": "a"}))

        assert both is not None and neither is not None
        self.assertEqual(both[0], 400)
        self.assertEqual(neither[0], 400)

    def test_rejects_missing_selector_and_unknown_tier(self) -> None:
        _, no_selector = validate_export_payload(self._json_bytes({"html": "x"}))
        _, bad_tier = validate_export_payload(self._json_bytes({"html": "x", "selector": "a", "tier": "ultra"}))

        assert no_selector is not None and bad_tier is not None
        self.assertEqual(no_selector[1]["error"], "invalid_payload")
        self.assertEqual(bad_tier[1]["error"], "invalid_payload")

    def test_rejects_non_string_fields(self) -> None:
        _, error = validate_export_payload(self._json_bytes({"html": 5, "selector": "a"}))

        assert error is not None
        self.assertIn("'html'", error[1]["detail"])


class InvoicePayloadValidationTests(unittest.TestCase):
    def _json_bytes(self, payload: object) -> bytes:
        return json.dumps(payload).encode("utf-8")

    def test_accepts_invoice_payload(self) -> None:
        payload, error = validate_invoice_payload(
            self._json_bytes({"invoice": {"invoiceNumber": "1", "lineItems": [{"quantity": 1}]}, "client": {}})
        )

        self.assertIsNone(error)
        assert payload is not None
        self.assertIn("invoice", payload)

    def test_rejects_missing_invoice(self) -> None:
        _, error = validate_invoice_payload(self._json_bytes({"client": {}}))

        assert error is not None
        self.assertEqual(error[1]["error"], "invalid_payload")

    def test_rejects_non_array_line_items(self) -> None:
        _, error = validate_invoice_payload(self._json_bytes({"invoice": {"lineItems": "bad"}}))

        assert error is not None
        self.assertEqual(error[0], 400)

    def test_rejects_non_object_sender(self) -> None:
        _, error = validate_invoice_payload(self._json_bytes({"invoice": {}, "sender": "me"}))

        assert error is not None
        self.assertIn("'sender'", error[1]["detail"])


class ResponseMappingTests(unittest.TestCase):
    def test_outcome_statuses(self) -> None:
        def failed(error):
            return ExportOutcome(status=ExportStatus.FAILED, error=error, message=error.user_message)

        self.assertEqual(outcome_error(failed(TargetNotFound()))[0], 404)
        self.assertEqual(outcome_error(failed(EmptyCapture()))[0], 422)
        self.assertEqual(outcome_error(failed(SerializationFailure()))[0], 500)
        self.assertEqual(outcome_error(ExportOutcome(status=ExportStatus.SKIPPED, message="busy"))[0], 409)

    def test_content_disposition_keeps_unicode_name(self) -> None:
        header = content_disposition("Cuenta de Cobro-1 Día.pdf")

        self.assertIn('filename="Cuenta de Cobro-1 D_a.pdf"', header)
        self.assertIn("filename*=UTF-8''Cuenta%20de%20Cobro-1%20D%C3%ADa.pdf", header)

    def test_disconnect_detection(self) -> None:
        self.assertTrue(is_client_disconnect(BrokenPipeError()))
        self.assertTrue(is_client_disconnect(ConnectionAbortedError()))
        self.assertTrue(is_client_disconnect(OSError(errno.ECONNRESET, "reset")))
        self.assertFalse(is_client_disconnect(OSError(errno.ENOENT, "missing")))
        self.assertFalse(is_client_disconnect(ValueError("bad")))


if __name__ == "__main__":
    unittest.main()
