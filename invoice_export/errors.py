"""Export pipeline error taxonomy."""

from __future__ import annotations


class ExportError(Exception):
    """Root of every failure the export pipeline can surface."""

    code = "export_failed"
    user_message = "The document could not be exported."

    def __init__(self, detail: str = "") -> None:
        super().__init__(detail or self.user_message)
        self.detail = detail or self.user_message


class CaptureError(ExportError):
    code = "capture_failed"
    user_message = "The invoice could not be captured for export."


class TargetNotFound(CaptureError):
    code = "target_not_found"
    user_message = "The element to export could not be found."


class EmptyCapture(CaptureError):
    code = "empty_capture"
    user_message = "The document could not be generated because the visual content has no size."


class SerializationFailure(ExportError):
    code = "serialization_failed"
    user_message = "The PDF document could not be generated."


class HostSaveFailure(ExportError):
    code = "save_failed"
    user_message = "The PDF document could not be saved."


class DependencyError(RuntimeError):
    """Raised when a required runtime dependency is missing."""
