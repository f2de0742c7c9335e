"""
Runs one job through the pipeline: claim, obtain text, analyse, persist.

The runner is synchronous and handles a single job per call. Exclusivity
comes from ``claim_job``; everything after a successful claim ends in either
``done`` (findings persisted in the same transaction) or ``failed`` with the
stage that broke recorded on the job and in its events.
"""
import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from tenderflow.models.job import Job
from tenderflow.models.result import JobResult
from tenderflow.schemas.findings import EvidenceCandidate, Findings
from tenderflow.services.analysis import clamp_text
from tenderflow.services.evidence import build_evidence_candidates, resolve_evidence
from tenderflow.services.extraction import MOCK_EXTRACTED_TEXT, extract_text, has_text
from tenderflow.services.findings import normalize_findings
from tenderflow.services.job_store import JobStateError, append_event, claim_job, finish_job
from tenderflow.utils.clock import utc_now

logger = logging.getLogger("tenderflow.runner")


@dataclass
class RunOutcome:
    status: str
    stage: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != "failed"


class JobRunner:
    def __init__(
        self,
        db: Session,
        storage,
        analyzer,
        max_input_chars: int = 120_000,
        mock_extract: bool = False,
    ):
        self.db = db
        self.storage = storage
        self.analyzer = analyzer
        self.max_input_chars = max_input_chars
        self.mock_extract = mock_extract

    def _event(self, job_id: str, user_id: str, level: str, message: str, meta: dict | None = None):
        append_event(self.db, job_id, level, message, meta=meta, user_id=user_id)

    def run(self, job: Job) -> RunOutcome:
        job_id, user_id = job.id, job.user_id
        if job.status == "done":
            return RunOutcome("already_done")
        if job.status == "failed":
            return RunOutcome("already_failed")
        if not claim_job(self.db, job_id):
            logger.info("Job %s already claimed", job_id)
            return RunOutcome("already_claimed")

        self._event(job_id, user_id, "info", "Processing started")
        stage = "download"
        try:
            text = self._stored_text(job_id)
            if text:
                self._event(job_id, user_id, "info", "Using text extracted at upload", {"chars": len(text)})
            else:
                if self.mock_extract:
                    stage = "extract"
                    text = MOCK_EXTRACTED_TEXT
                    self._event(job_id, user_id, "info", "Mock extraction used", {"chars": len(text)})
                else:
                    data = self.storage.get(job.file_path)
                    self._event(job_id, user_id, "info", "Document downloaded", {"bytes": len(data)})
                    stage = "extract"
                    text = extract_text(data, job.source_type)
                    self._event(job_id, user_id, "info", "Text extracted", {"chars": len(text)})
                stage = "persist_text"
                self._save_text(job_id, user_id, text)

            if not has_text(text):
                self._event(job_id, user_id, "warn", "No text could be extracted from the document")

            stage = "analysis"
            candidates = build_evidence_candidates(text)
            self._event(job_id, user_id, "info", "Evidence candidates built", {"count": len(candidates)})
            analysis_input, truncated = clamp_text(text, self.max_input_chars)
            if truncated:
                self._event(job_id, user_id, "warn", "Text truncated for analysis",
                            {"chars": len(text), "max_chars": self.max_input_chars})
            raw = self.analyzer.analyze(analysis_input, candidates)
            findings = resolve_evidence(normalize_findings(raw), candidates)
            self._event(job_id, user_id, "info", "Analysis complete", {
                "requirements": len(findings.requirements),
                "risks": len(findings.risks),
                "clarifications": len(findings.clarifications),
            })
            if not findings.requirements:
                self._event(job_id, user_id, "warn", "Analysis returned no requirements")

            stage = "persist_results"
            self._save_findings(job_id, user_id, findings, candidates)
            finish_job(self.db, job, "done")
        except Exception as exc:
            return self._fail(job, stage, exc)

        self._event(job_id, user_id, "info", "Job done")
        logger.info("Job %s done", job_id)
        return RunOutcome("done")

    def _stored_text(self, job_id: str) -> str | None:
        result = self.db.get(JobResult, job_id)
        if result is not None and has_text(result.extracted_text):
            return result.extracted_text
        return None

    def _result_row(self, job_id: str, user_id: str) -> JobResult:
        result = self.db.get(JobResult, job_id)
        if result is None:
            result = JobResult(job_id=job_id, user_id=user_id, updated_at=utc_now())
            self.db.add(result)
        return result

    def _save_text(self, job_id: str, user_id: str, text: str):
        result = self._result_row(job_id, user_id)
        result.extracted_text = text
        result.updated_at = utc_now()
        self.db.commit()

    def _save_findings(self, job_id: str, user_id: str, findings: Findings, candidates: list[EvidenceCandidate]):
        # Not committed here: finish_job commits findings and the status together.
        result = self._result_row(job_id, user_id)
        result.executive_summary = findings.executive_summary.model_dump()
        result.requirements = [r.model_dump() for r in findings.requirements]
        result.risks = [r.model_dump() for r in findings.risks]
        result.clarifications = list(findings.clarifications)
        result.outline = [s.model_dump() for s in findings.outline]
        result.evidence = [c.model_dump() for c in candidates]
        result.updated_at = utc_now()

    def _fail(self, job: Job, stage: str, exc: Exception) -> RunOutcome:
        message = str(exc) or exc.__class__.__name__
        logger.warning("Job failed at %s: %s", stage, message, exc_info=exc)
        self.db.rollback()
        job_id, user_id = job.id, job.user_id
        try:
            finish_job(self.db, job, "failed", message)
        except (JobStateError, SQLAlchemyError):
            logger.exception("Could not mark job %s failed", job_id)
            self.db.rollback()
        self._event(job_id, user_id, "error", f"Processing failed at {stage}",
                    {"stage": stage, "error": message})
        return RunOutcome("failed", stage=stage, error=message)
