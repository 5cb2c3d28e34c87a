"""Result type shared by the best-effort artifact steps (QR code, PDF)."""

import logging
from dataclasses import dataclass
from typing import Optional

from app.exceptions import ArtifactGenerationError

logger = logging.getLogger(__name__)


@dataclass
class ArtifactResult:
    """
    Outcome of one artifact step.

    ``content`` can be present even when ``url`` is not: a QR image that
    encoded fine but failed to upload is still embedded in the PDF.
    """

    artifact: str
    url: Optional[str] = None
    content: Optional[bytes] = None
    error: Optional[ArtifactGenerationError] = None

    @property
    def ok(self) -> bool:
        return self.url is not None and self.error is None

    @classmethod
    def failed(cls, artifact: str, exc: Exception, content: Optional[bytes] = None) -> "ArtifactResult":
        error = exc if isinstance(exc, ArtifactGenerationError) else ArtifactGenerationError(artifact, str(exc))
        return cls(artifact=artifact, content=content, error=error)
