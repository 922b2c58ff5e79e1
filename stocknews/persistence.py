"""On-disk persistence of the source list and the view state (JSON files)."""

from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Protocol, Sequence

from pydantic import BaseModel, Field, ValidationError

from stocknews.models.domain import FeedSource, ViewState
from stocknews.utils.logging import get_logger

logger = get_logger(__name__)


class SourceRepository(Protocol):
    def load(self) -> Optional[List[FeedSource]]: ...
    def save(self, sources: Sequence[FeedSource]) -> None: ...


class SourcesFile(BaseModel):
    sources: List[FeedSource] = Field(default_factory=list)


def _write(path: Path, payload: str) -> bool:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(payload, encoding="utf-8")
    except OSError as exc:
        logger.error("persistence.write_failed", extra={"path": str(path), "error": str(exc)})
        return False
    return True


def _read(path: Path) -> Optional[str]:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except OSError as exc:
        logger.warning("persistence.read_failed", extra={"path": str(path), "error": str(exc)})
        return None


class JsonSourceRepository:
    """Stores the configured sources as ``{"sources": [...]}``."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> Optional[List[FeedSource]]:
        """Saved sources, or None when nothing usable is on disk.

        An unreadable or invalid file is left in place for the user to fix.
        """
        raw = _read(self.path)
        if raw is None:
            return None
        try:
            return SourcesFile.model_validate_json(raw).sources
        except ValidationError as exc:
            logger.error("persistence.sources_invalid", extra={"path": str(self.path), "error": str(exc)})
            return None

    def save(self, sources: Sequence[FeedSource]) -> None:
        _write(self.path, SourcesFile(sources=list(sources)).model_dump_json(indent=2))


class ViewStateStore:
    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def load(self) -> ViewState:
        raw = _read(self.path)
        if raw is None:
            return ViewState()
        try:
            return ViewState.model_validate_json(raw)
        except ValidationError as exc:
            logger.warning("persistence.state_invalid", extra={"path": str(self.path), "error": str(exc)})
            return ViewState()

    def save(self, state: ViewState) -> None:
        _write(self.path, state.model_dump_json(indent=2, exclude_none=True))
