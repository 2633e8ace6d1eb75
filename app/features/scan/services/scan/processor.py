from datetime import datetime, timezone
from typing import Callable, List, Optional

from app.features.scan.exceptions import DetectorError, ScanError, SuggesterQuotaError
from app.features.scan.schemas.scan import ScanJob, ScanResult, ScanSummary, Violation
from app.features.scan.services.detection.violation_detector import ViolationDetector, normalize_violations
from app.features.scan.services.fetch.page_fetcher import PageFetcher
from app.features.scan.services.suggestions.fix_suggester import (
    AI_QUOTA_EXCEEDED_PLACEHOLDER,
    AI_UNAVAILABLE_PLACEHOLDER,
    FixSuggester,
)
from app.platform.logger import get_logger

logger = get_logger(__name__)

ProgressCallback = Callable[[int], None]

# Progress checkpoints reported to the queue
PROGRESS_ACCEPTED = 10
PROGRESS_FETCHING = 20
PROGRESS_ENVIRONMENT_READY = 40
PROGRESS_DETECTED = 60
PROGRESS_SUGGESTIONS = 80
PROGRESS_ASSEMBLED = 100


class ScanProcessor:
    """
    The per-job scan pipeline: fetch -> detect -> suggest fixes -> assemble.

    Errors from fetch and detection propagate so the queue can retry the job.
    Fix suggestion never fails a job; a placeholder text is used instead.
    """

    def __init__(
        self,
        fetcher: PageFetcher,
        detector: ViolationDetector,
        suggester: Optional[FixSuggester] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.fetcher = fetcher
        self.detector = detector
        self.suggester = suggester
        self._clock = clock

    def run(self, job: ScanJob, report_progress: ProgressCallback) -> ScanResult:
        report_progress(PROGRESS_ACCEPTED)

        report_progress(PROGRESS_FETCHING)
        logger.info(f"[{job.id}] Fetching HTML from {job.url}")
        page = self.fetcher.fetch(job.url)

        violations = self._detect(job, page.html, report_progress)

        report_progress(PROGRESS_SUGGESTIONS)
        fix_suggestions = self._suggest_fixes(job, violations)

        result = ScanResult(
            violations=violations,
            url=job.url,
            timestamp=self._clock(),
            fix_suggestions=fix_suggestions,
            summary=ScanSummary.from_violations(violations),
        )
        report_progress(PROGRESS_ASSEMBLED)
        return result

    def _detect(self, job: ScanJob, markup: str, report_progress: ProgressCallback) -> List[Violation]:
        try:
            with self.detector.environment(markup, job.url) as environment:
                report_progress(PROGRESS_ENVIRONMENT_READY)
                logger.info(f"[{job.id}] Running accessibility rules ({', '.join(self.detector.tags)})")
                raw_violations = self.detector.run(environment, job.url)
            violations = normalize_violations(raw_violations)
        except ScanError:
            raise
        except Exception as e:
            raise DetectorError(f"Accessibility detection crashed: {e}") from e

        logger.info(f"[{job.id}] Found {len(violations)} accessibility violations")
        report_progress(PROGRESS_DETECTED)
        return violations

    def _suggest_fixes(self, job: ScanJob, violations: List[Violation]) -> Optional[str]:
        if not job.include_fix_suggestions:
            logger.info(f"[{job.id}] AI fixes disabled for this request")
            return None
        if not violations:
            logger.info(f"[{job.id}] No violations found, skipping AI fixes")
            return None
        if self.suggester is None:
            logger.warning(f"[{job.id}] No fix suggester configured, using placeholder")
            return AI_UNAVAILABLE_PLACEHOLDER

        try:
            logger.info(f"[{job.id}] Generating AI-powered fixes for {len(violations)} violations")
            suggestions = self.suggester.suggest(violations)
        except SuggesterQuotaError as e:
            logger.error(f"[{job.id}] AI fix quota exceeded: {e}")
            return AI_QUOTA_EXCEEDED_PLACEHOLDER
        except Exception as e:
            logger.error(f"[{job.id}] Error generating AI fixes: {e}", exc_info=True)
            return AI_UNAVAILABLE_PLACEHOLDER

        if not suggestions or not suggestions.strip():
            return AI_UNAVAILABLE_PLACEHOLDER
        return suggestions
