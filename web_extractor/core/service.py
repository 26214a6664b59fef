"""
External entry points: submit / status / cancel / export jobs, test one
selector against a live page, and render a page for the authoring preview.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..collectors.http_requests import HttpCollector
from ..collectors.playwright_browser import PlaywrightRenderer, RenderCollector, RendererPool
from . import exporter, safety
from .config import Settings
from .errors import EvalError, FetchError, SafetyRejection, ValidationError
from .evaluator import evaluate, parse_document
from .fetcher import FetchAdapter
from .interfaces import ResultSink, TextAnalyzer
from .models import FetchOptions, JobStatus, SelectorRule, Target
from .orchestrator import JobOrchestrator
from .persistence import persist_job
from .preview import PREVIEW_HEADERS, prepare_preview
from .rate_limit import SlidingWindowLimiter
from .runner import FORBIDDEN_ERROR, TargetRunner

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PreviewPayload:
    html: str
    headers: Dict[str, str]


def parse_targets(payload: Dict[str, Any]) -> List[Target]:
    if not isinstance(payload, dict):
        raise ValidationError("request body must be an object")
    raw = payload.get("targets")
    if not isinstance(raw, list) or not raw:
        raise ValidationError("'targets' must be a non-empty list")
    return [Target.from_dict(t) for t in raw]


class ExtractionService:
    def __init__(self, orchestrator: JobOrchestrator, fetcher: FetchAdapter,
                 limiter: SlidingWindowLimiter, settings: Optional[Settings] = None,
                 analyzer: Optional[TextAnalyzer] = None, sink: Optional[ResultSink] = None):
        self.orchestrator = orchestrator
        self.fetcher = fetcher
        self.limiter = limiter
        self.settings = settings or Settings()
        self.analyzer = analyzer
        self.sink = sink

    # ---------------------- jobs ----------------------
    def submit_job(self, payload: Dict[str, Any]) -> Dict[str, str]:
        return {"jobId": self.orchestrator.submit(parse_targets(payload))}

    def get_job(self, job_id: str) -> Dict[str, Any]:
        return self.orchestrator.status(job_id).to_dict()

    def list_jobs(self) -> List[Dict[str, Any]]:
        return [j.summary() for j in self.orchestrator.list_jobs()]

    def cancel_job(self, job_id: str) -> Dict[str, bool]:
        return {"cancelled": self.orchestrator.cancel(job_id)}

    def delete_job(self, job_id: str) -> None:
        self.orchestrator.delete(job_id)

    def export_job(self, job_id: str, fmt: str) -> exporter.ExportPayload:
        job = self.orchestrator.status(job_id)
        return exporter.export(job, fmt, list_delimiter=self.settings.list_delimiter)

    def persist_job(self, job_id: str, table: Optional[str] = None,
                    column_map: Optional[Dict[str, str]] = None) -> int:
        if self.sink is None:
            raise ValidationError("no persistence sink configured")
        return persist_job(self.orchestrator.status(job_id), self.sink, table, column_map)

    def analyze_job(self, job_id: str) -> Optional[Dict[str, Any]]:
        """Feed the extracted text to the optional analyzer. Never changes the job."""
        job = self.orchestrator.status(job_id)
        if self.analyzer is None or job.status is not JobStatus.COMPLETED:
            return None
        texts = []
        for r in job.results:
            for v in r.data.values():
                if isinstance(v, list):
                    texts.extend(v)
                elif isinstance(v, str):
                    texts.append(v)
        text = "\n".join(t for t in texts if t)
        if not text:
            return None
        try:
            return self.analyzer.analyze(text)
        except Exception:
            logger.exception("Text analysis failed for job %s", job_id)
            return None

    # ---------------------- authoring tool ----------------------
    def evaluate_selector(self, payload: Dict[str, Any], client_id: Optional[str] = None) -> Dict[str, Any]:
        self.limiter.hit(client_id)
        if not isinstance(payload, dict) or not payload.get("url") or not payload.get("selector"):
            raise ValidationError("'url' and 'selector' are required")
        rule = SelectorRule.from_dict(payload["selector"])
        options = FetchOptions.from_dict(payload.get("options"))
        url = payload["url"]

        try:
            safety.check(url)
            doc = self.fetcher.fetch(url, options)
            value = evaluate(parse_document(doc.html), rule)
        except SafetyRejection as e:
            return {"success": False, "error": f"{FORBIDDEN_ERROR}: {e.reason}"}
        except (FetchError, EvalError) as e:
            return {"success": False, "error": str(e)}
        return {"success": True, "value": value, "kind": rule.kind.value}

    def render_preview(self, payload: Dict[str, Any], client_id: Optional[str] = None) -> PreviewPayload:
        self.limiter.hit(client_id)
        if not isinstance(payload, dict) or not payload.get("url"):
            raise ValidationError("'url' is required")
        url = payload["url"]
        safety.check(url)
        doc = self.fetcher.fetch(url, FetchOptions.from_dict(payload.get("options")))
        return PreviewPayload(html=prepare_preview(doc.html, doc.final_url or url), headers=dict(PREVIEW_HEADERS))


def build_service(settings: Optional[Settings] = None, analyzer: Optional[TextAnalyzer] = None,
                  sink: Optional[ResultSink] = None) -> ExtractionService:
    settings = settings or Settings()
    pool = RendererPool(
        lambda: PlaywrightRenderer(headless=settings.headless, user_agent=settings.user_agent),
        size=settings.renderer_pool_size,
    )
    fetcher = FetchAdapter(HttpCollector(user_agent=settings.user_agent), RenderCollector(pool))
    orchestrator = JobOrchestrator(TargetRunner(fetcher), concurrency=settings.concurrency)
    limiter = SlidingWindowLimiter(settings.rate_limit_max, settings.rate_limit_window_seconds)
    return ExtractionService(orchestrator, fetcher, limiter, settings, analyzer=analyzer, sink=sink)
