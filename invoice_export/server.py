"""HTTP server entrypoints for invoice export."""

from __future__ import annotations

import asyncio
import atexit
import json
import threading
from concurrent.futures import Future, TimeoutError as FutureTimeoutError
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, Coroutine, Dict, Optional, Tuple
from urllib.parse import quote, urlsplit

from .auto_export import requested_tier
from .config import (
    EXPORT_QUEUE_TIMEOUT_MS,
    EXPORT_TIMEOUT_MS,
    LISTEN_BACKLOG,
    MAX_BODY_BYTES as MAX_BODY_BYTES_CONFIG,
    MAX_INFLIGHT_EXPORTS,
)
from .errors import DependencyError
from .logging import get_logger
from .models import ExportArtifact, ExportOutcome, ExportStatus, FidelityTier, RenderTarget
from .net import is_client_disconnect
from .orchestrator import ExportOrchestrator
from .page import InvoicePage
from .sinks import MemorySink, safe_file_name

logger = get_logger(__name__)

EXPORT_INFLIGHT_SEMAPHORE = threading.BoundedSemaphore(MAX_INFLIGHT_EXPORTS)
EXPORT_RUNTIME_LOCK = threading.Lock()
EXPORT_RUNTIME: Optional["ExportRuntime"] = None
ValidationError = Tuple[int, Dict[str, Any]]
ExportRequest = Tuple[RenderTarget, str, FidelityTier]

STATUS_BY_ERROR_CODE = {
    "target_not_found": 404,
    "empty_capture": 422,
}


def load_capture_backend():
    try:
        from .capture import BrowserSession, CaptureEngine
    except ModuleNotFoundError as exc:
        if exc.name and exc.name.split(".")[0] in ("playwright", "PIL"):
            raise DependencyError(
                f"Missing dependency '{exc.name}'. Install project dependencies with "
                "'pip install -e .' and run 'playwright install chromium'."
            ) from exc
        raise
    return BrowserSession, CaptureEngine


class ExportRuntime:
    """One asyncio loop thread owning the shared browser and orchestrator."""

    def __init__(self) -> None:
        self.loop = asyncio.new_event_loop()
        self.thread = threading.Thread(target=self._run_loop, name="export-loop", daemon=True)
        self.session: Any = None
        self.orchestrator: Optional[ExportOrchestrator] = None

    def _run_loop(self) -> None:
        asyncio.set_event_loop(self.loop)
        self.loop.run_forever()

    async def _open(self) -> None:
        browser_session_cls, capture_engine_cls = load_capture_backend()
        self.session = await browser_session_cls().__aenter__()
        self.orchestrator = ExportOrchestrator(capture_engine_cls(self.session.browser))

    async def _close(self) -> None:
        if self.session is not None:
            await self.session.__aexit__(None, None, None)
            self.session = None

    def start(self) -> "ExportRuntime":
        self.thread.start()
        try:
            self.submit(self._open()).result(timeout=EXPORT_TIMEOUT_MS / 1000.0)
        except Exception:
            self.loop.call_soon_threadsafe(self.loop.stop)
            self.thread.join(timeout=10)
            raise
        return self

    def submit(self, coro: Coroutine[Any, Any, Any]) -> Future:
        return asyncio.run_coroutine_threadsafe(coro, self.loop)

    def shutdown(self) -> None:
        try:
            self.submit(self._close()).result(timeout=10)
        except Exception:
            logger.warning("Browser did not shut down cleanly", exc_info=True)
        self.loop.call_soon_threadsafe(self.loop.stop)
        self.thread.join(timeout=10)


def get_export_runtime() -> ExportRuntime:
    global EXPORT_RUNTIME
    with EXPORT_RUNTIME_LOCK:
        if EXPORT_RUNTIME is None:
            EXPORT_RUNTIME = ExportRuntime().start()
        return EXPORT_RUNTIME


def shutdown_export_runtime() -> None:
    global EXPORT_RUNTIME
    with EXPORT_RUNTIME_LOCK:
        runtime = EXPORT_RUNTIME
        EXPORT_RUNTIME = None
    if runtime is not None:
        runtime.shutdown()


atexit.register(shutdown_export_runtime)


def _parse_json_object(body: bytes) -> Tuple[Optional[Dict[str, Any]], Optional[ValidationError]]:
    try:
        payload = json.loads(body.decode("utf-8"))
    except UnicodeDecodeError:
        return None, (
            400,
            {"error": "invalid_encoding", "detail": "Body must be UTF-8 encoded JSON."},
        )
    except json.JSONDecodeError as exc:
        return None, (
            400,
            {
                "error": "invalid_json",
                "detail": f"{exc.msg} (line {exc.lineno}, column {exc.colno})",
            },
        )

    if not isinstance(payload, dict):
        return None, (
            400,
            {"error": "invalid_payload", "detail": "JSON root must be an object."},
        )
    return payload, None


def validate_export_payload(body: bytes) -> Tuple[Optional[ExportRequest], Optional[ValidationError]]:
    payload, error = _parse_json_object(body)
    if error is not None:
        return None, error

    for field in ("selector", "html", "url", "file_name", "key"):
        value = payload.get(field)
        if value is not None and not isinstance(value, str):
            return None, (
                400,
                {"error": "invalid_payload", "detail": f"'{field}' must be a string."},
            )

    try:
        target = RenderTarget(
            selector=payload.get("selector") or "",
            html=payload.get("html"),
            url=payload.get("url"),
            key=payload.get("key"),
        )
        tier = FidelityTier.parse(payload.get("tier"), default=FidelityTier.HIGH)
    except ValueError as exc:
        return None, (400, {"error": "invalid_payload", "detail": str(exc)})

    file_name = (payload.get("file_name") or "").strip() or "document.pdf"
    return (target, file_name, tier), None


def validate_invoice_payload(body: bytes) -> Tuple[Optional[Dict[str, Any]], Optional[ValidationError]]:
    payload, error = _parse_json_object(body)
    if error is not None:
        return None, error

    invoice = payload.get("invoice")
    if not isinstance(invoice, dict):
        return None, (
            400,
            {"error": "invalid_payload", "detail": "'invoice' must be an object."},
        )
    for field in ("client", "sender"):
        value = payload.get(field)
        if value is not None and not isinstance(value, dict):
            return None, (
                400,
                {"error": "invalid_payload", "detail": f"'{field}' must be an object."},
            )

    items = invoice.get("lineItems", [])
    if items is None:
        items = []
    if not isinstance(items, list) or not all(isinstance(item, dict) for item in items):
        return None, (
            400,
            {"error": "invalid_payload", "detail": "'invoice.lineItems' must be an array of objects."},
        )

    return payload, None


def content_disposition(file_name: str) -> str:
    name = safe_file_name(file_name)
    fallback = name.encode("ascii", "replace").decode("ascii").replace("?", "_")
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(name)}"


def outcome_error(outcome: ExportOutcome) -> ValidationError:
    if outcome.status is ExportStatus.SKIPPED:
        return 409, {"error": "export_in_progress", "detail": outcome.message}
    code = getattr(outcome.error, "code", "export_failed")
    return STATUS_BY_ERROR_CODE.get(code, 500), {"error": code, "detail": outcome.message}


class ExportHandler(BaseHTTPRequestHandler):
    MAX_BODY_BYTES = MAX_BODY_BYTES_CONFIG

    def _write_response(
        self,
        status: int,
        content_type: str,
        body: bytes,
        headers: Optional[Dict[str, str]] = None,
    ) -> bool:
        try:
            self.send_response(status)
            self.send_header("Content-Type", content_type)
            self.send_header("Content-Length", str(len(body)))
            for name, value in (headers or {}).items():
                self.send_header(name, value)
            self.end_headers()
            self.wfile.write(body)
            return True
        except Exception as exc:
            if is_client_disconnect(exc):
                return False
            raise

    def _send_json(self, status: int, payload: Dict[str, Any]) -> bool:
        body = json.dumps(payload).encode("utf-8")
        return self._write_response(status, "application/json", body)

    def _send_artifact(self, artifact: ExportArtifact) -> bool:
        return self._write_response(
            200,
            artifact.content_type,
            artifact.data,
            {"Content-Disposition": content_disposition(artifact.file_name)},
        )

    def _read_body(self) -> Optional[bytes]:
        header = self.headers.get("Content-Length")
        if header is None:
            self._send_json(
                411,
                {
                    "error": "missing_content_length",
                    "detail": "Content-Length header is required.",
                },
            )
            return None

        try:
            content_length = int(header)
        except ValueError:
            self._send_json(
                400,
                {
                    "error": "invalid_content_length",
                    "detail": "Content-Length must be an integer.",
                },
            )
            return None

        if content_length <= 0:
            self._send_json(400, {"error": "empty_body", "detail": "Request body cannot be empty."})
            return None

        if content_length > self.MAX_BODY_BYTES:
            self._send_json(
                413,
                {
                    "error": "payload_too_large",
                    "detail": f"Body exceeds {self.MAX_BODY_BYTES} bytes.",
                },
            )
            return None

        try:
            return self.rfile.read(content_length)
        except Exception as exc:
            if is_client_disconnect(exc):
                return None
            raise

    def _run_export(self, make_coro) -> Tuple[bool, Any]:
        """Run a coroutine on the export loop, answering busy/timeout/failure itself."""
        acquired = EXPORT_INFLIGHT_SEMAPHORE.acquire(timeout=EXPORT_QUEUE_TIMEOUT_MS / 1000.0)
        if not acquired:
            retry_after_seconds = max(1, (EXPORT_QUEUE_TIMEOUT_MS + 999) // 1000)
            self._send_json(
                503,
                {
                    "error": "server_busy",
                    "detail": "Export queue is full; retry shortly.",
                    "retry_after_ms": EXPORT_QUEUE_TIMEOUT_MS,
                    "retry_after_seconds": retry_after_seconds,
                    "max_inflight_exports": MAX_INFLIGHT_EXPORTS,
                },
            )
            return False, None

        future = None
        try:
            runtime = get_export_runtime()
            future = runtime.submit(make_coro(runtime.orchestrator))
            return True, future.result(timeout=EXPORT_TIMEOUT_MS / 1000.0)
        except FutureTimeoutError:
            if future is not None:
                future.cancel()
            self._send_json(
                504,
                {
                    "error": "export_timeout",
                    "detail": f"Export exceeded timeout of {EXPORT_TIMEOUT_MS} ms.",
                },
            )
            return False, None
        except Exception as exc:
            logger.exception("Export request failed")
            self._send_json(500, {"error": "export_failed", "detail": str(exc)})
            return False, None
        finally:
            EXPORT_INFLIGHT_SEMAPHORE.release()

    def _handle_export(self, body: bytes) -> None:
        request, validation_error = validate_export_payload(body)
        if validation_error is not None:
            status, payload_body = validation_error
            self._send_json(status, payload_body)
            return

        target, file_name, tier = request
        sink = MemorySink()
        completed, outcome = self._run_export(
            lambda orchestrator: orchestrator.export_document(target, file_name, tier, sink=sink)
        )
        if not completed:
            return
        if not outcome.ok:
            status, payload_body = outcome_error(outcome)
            self._send_json(status, payload_body)
            return
        self._send_artifact(sink.last)

    def _handle_invoice(self, body: bytes, query: str) -> None:
        payload, validation_error = validate_invoice_payload(body)
        if validation_error is not None:
            status, payload_body = validation_error
            self._send_json(status, payload_body)
            return

        try:
            requested_tier(query)
        except ValueError as exc:
            self._send_json(400, {"error": "invalid_query", "detail": str(exc)})
            return

        async def loader() -> Dict[str, Any]:
            return payload

        holder: Dict[str, InvoicePage] = {}

        def open_page(orchestrator: ExportOrchestrator):
            holder["page"] = InvoicePage(orchestrator, loader, query)
            return holder["page"].open()

        completed, outcome = self._run_export(open_page)
        if not completed:
            return

        page = holder["page"]
        if page.error is not None:
            self._send_json(404, {"error": "invoice_not_found", "detail": page.error})
            return
        if outcome is None:
            self._write_response(200, "text/html; charset=utf-8", (page.html or "").encode("utf-8"))
            return
        if not outcome.ok:
            status, payload_body = outcome_error(outcome)
            self._send_json(status, payload_body)
            return
        self._send_artifact(outcome.artifact)

    def do_POST(self) -> None:
        url = urlsplit(self.path)
        if url.path not in ("/export", "/invoice"):
            self._send_json(404, {"error": "not_found", "detail": "Unsupported endpoint."})
            return

        body = self._read_body()
        if body is None:
            return

        if url.path == "/export":
            self._handle_export(body)
        else:
            self._handle_invoice(body, url.query)

    def do_GET(self) -> None:
        if self.path in ("/", "/health", "/healthz", "/ready"):
            self._send_json(200, {"status": "ok"})
            return
        self._send_json(404, {"error": "not_found", "detail": "Unsupported endpoint."})

    def handle_one_request(self) -> None:
        try:
            super().handle_one_request()
        except Exception as exc:
            if is_client_disconnect(exc):
                return
            raise

    def log_message(self, format: str, *args: Any) -> None:
        return


class ExportHTTPServer(ThreadingHTTPServer):
    daemon_threads = True
    allow_reuse_address = True
    request_queue_size = LISTEN_BACKLOG


def run(host: str = "0.0.0.0", port: int = 8080) -> None:
    load_capture_backend()
    get_export_runtime()
    server = ExportHTTPServer((host, port), ExportHandler)
    logger.info("Invoice export server listening", url=f"http://{host}:{port}")
    server.serve_forever()
