from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable

from .models import Document, FetchOptions


class Collector(ABC):
    """A fetch strategy: returns the document for one URL or raises FetchError/SafetyRejection."""

    @abstractmethod
    def collect(self, url: str, options: FetchOptions) -> Document:
        ...


class Renderer(ABC):
    """Headless engine: render URL with JavaScript, return the final DOM."""

    @abstractmethod
    def render(self, url: str, options: FetchOptions) -> Document:
        ...


class ResultSink(ABC):
    @abstractmethod
    def save(self, job_id: str, blob: bytes) -> None:
        ...

    @abstractmethod
    def append_rows(self, table: str, rows: Iterable[Dict[str, Any]]) -> int:
        ...


class TextAnalyzer(ABC):
    @abstractmethod
    def analyze(self, text: str) -> Dict[str, Any]:
        """Return e.g. {"summary": ..., "sentiment": ..., "entities": [...]}."""
        ...
