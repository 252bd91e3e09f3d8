"""Destinations for finished export artifacts."""

from __future__ import annotations

import os
import re
import tempfile
from typing import List, Protocol

from .errors import HostSaveFailure
from .logging import get_logger
from .models import ExportArtifact

logger = get_logger(__name__)

_UNSAFE_NAME_CHARS = re.compile(r'[\\/:*?"<>|\x00-\x1f]')


class DownloadSink(Protocol):
    def deliver(self, artifact: ExportArtifact) -> None:
        ...


def safe_file_name(name: str) -> str:
    cleaned = _UNSAFE_NAME_CHARS.sub("_", name).strip().strip(".")
    return cleaned or "document.pdf"


class MemorySink:
    """Keeps delivered artifacts in memory, e.g. for an HTTP response body."""

    def __init__(self) -> None:
        self.artifacts: List[ExportArtifact] = []

    def deliver(self, artifact: ExportArtifact) -> None:
        self.artifacts.append(artifact)

    @property
    def last(self) -> ExportArtifact:
        if not self.artifacts:
            raise LookupError("No artifact has been delivered.")
        return self.artifacts[-1]


class DirectorySink:
    """Writes artifacts into a directory; a file only appears once it is complete."""

    def __init__(self, directory: str) -> None:
        self.directory = directory

    def path_for(self, artifact: ExportArtifact) -> str:
        return os.path.join(self.directory, safe_file_name(artifact.file_name))

    def deliver(self, artifact: ExportArtifact) -> None:
        destination = self.path_for(artifact)
        tmp_path = None
        try:
            os.makedirs(self.directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=".export-", suffix=".part", dir=self.directory)
            with os.fdopen(fd, "wb") as handle:
                handle.write(artifact.data)
            os.replace(tmp_path, destination)
            tmp_path = None
        except OSError as exc:
            raise HostSaveFailure(f"Could not write {destination}: {exc}") from exc
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.unlink(tmp_path)
        logger.info("Saved document", path=destination, size=artifact.size)
