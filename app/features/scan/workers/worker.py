"""
Scan worker process.

Each execution slot leases one job at a time from the queue, runs the scan
pipeline under the whole-job timeout and writes the outcome back. Run with::

    python -m app.features.scan.workers.worker
"""
import signal
import sys
import threading
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Callable, List, Optional

from app.features.scan.exceptions import JobTimeoutError, LeaseLostError, describe_failure
from app.features.scan.schemas.scan import JobState, ScanJob, ScanResult
from app.features.scan.services.queue.base import JobQueue
from app.features.scan.services.scan.processor import ScanProcessor
from app.platform.config import settings
from app.platform.logger import get_logger

logger = get_logger(__name__)

MAX_CONCURRENCY = 8


class ScanWorker:
    def __init__(
        self,
        queue: JobQueue,
        processor: ScanProcessor,
        concurrency: int = 2,
        poll_interval: float = 1.0,
        job_timeout: float = 120.0,
    ):
        if not 1 <= concurrency <= MAX_CONCURRENCY:
            raise ValueError(f"concurrency must be between 1 and {MAX_CONCURRENCY}, got {concurrency}")
        self.queue = queue
        self.processor = processor
        self.concurrency = concurrency
        self.poll_interval = poll_interval
        self.job_timeout = job_timeout
        self._stopping = threading.Event()
        self._slots: List[threading.Thread] = []
        # One unit per running pipeline, held until the pipeline thread returns
        self._capacity = threading.BoundedSemaphore(concurrency)

    @property
    def is_running(self) -> bool:
        return any(slot.is_alive() for slot in self._slots)

    def start(self) -> None:
        if self.is_running:
            return
        self._stopping.clear()
        self._slots = [
            threading.Thread(target=self._slot_loop, args=(index,), name=f"scan-slot-{index}", daemon=True)
            for index in range(self.concurrency)
        ]
        for slot in self._slots:
            slot.start()
        logger.info(f"Scan worker started with {self.concurrency} slots")

    def stop(self, timeout: Optional[float] = None) -> None:
        """Stop leasing new jobs and wait for in-flight ones to finish."""
        self._stopping.set()
        for slot in self._slots:
            slot.join(timeout)
        self._slots = []
        logger.info("Scan worker stopped")

    def process_next(self) -> Optional[JobState]:
        """
        Lease and process a single job in the calling thread. None when nothing
        is ready, or when every pipeline slot is still taken by a run that
        outlived its timeout.
        """
        if not self._capacity.acquire(blocking=False):
            return None
        try:
            job = self.queue.lease()
        except Exception:
            self._capacity.release()
            raise
        if job is None:
            self._capacity.release()
            return None
        return self.run_job(job, release=self._capacity.release)

    def run_job(self, job: ScanJob, release: Optional[Callable[[], None]] = None) -> Optional[JobState]:
        """
        Process a leased job. `release` is called once the pipeline thread has
        returned, which after a timeout can be later than this method.
        """
        logger.info(f"[{job.id}] Job active (attempt {job.attempts}/{job.max_attempts}) - scanning {job.url}")
        try:
            result = self._run_with_timeout(job, release)
            self.queue.complete(job.id, job.lease_token, result)
        except LeaseLostError as e:
            logger.warning(f"[{job.id}] Dropping outcome: {e}")
            return None
        except Exception as e:
            return self._record_failure(job, e)

        logger.info(f"[{job.id}] Job completed: {result.summary.total} violations found for {job.url}")
        return JobState.completed

    def _run_with_timeout(self, job: ScanJob, release: Optional[Callable[[], None]] = None) -> ScanResult:
        timed_out = threading.Event()

        def report_progress(progress: int) -> None:
            if timed_out.is_set():
                raise JobTimeoutError(f"Job {job.id} abandoned after the whole-job timeout")
            self.queue.update_progress(job.id, job.lease_token, progress)
            logger.info(f"[{job.id}] Progress {progress}%")

        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"scan-job-{job.id[:8]}")
        future = None
        try:
            future = executor.submit(self.processor.run, job, report_progress)
            return future.result(timeout=self.job_timeout)
        except FutureTimeoutError:
            timed_out.set()
            raise JobTimeoutError(f"Job {job.id} timed out after {self.job_timeout:g}s") from None
        finally:
            executor.shutdown(wait=False)
            if release is not None:
                if future is not None and not future.done():
                    logger.warning(f"[{job.id}] Pipeline still running after timeout, slot held until it returns")
                    future.add_done_callback(lambda _: release())
                else:
                    release()

    def _record_failure(self, job: ScanJob, error: Exception) -> Optional[JobState]:
        reason = describe_failure(error)
        try:
            state = self.queue.fail(job.id, job.lease_token, reason)
        except LeaseLostError as e:
            logger.warning(f"[{job.id}] Could not record failure ({reason}): {e}")
            return None
        except Exception:
            logger.exception(f"[{job.id}] Could not record failure ({reason}), lease will expire")
            return None

        if state == JobState.failed:
            logger.error(f"[{job.id}] Job failed after {job.attempts} attempts: {reason}")
        else:
            logger.warning(f"[{job.id}] Attempt {job.attempts} failed, will retry: {reason}")
        return state

    def _slot_loop(self, index: int) -> None:
        logger.info(f"Slot {index} ready and waiting for jobs")
        while not self._stopping.is_set():
            try:
                outcome = self.process_next()
            except Exception:
                logger.exception(f"Slot {index} could not lease from the queue")
                outcome = None
            if outcome is None:
                self._stopping.wait(self.poll_interval)


def build_scan_worker(queue: JobQueue) -> ScanWorker:
    """Wire the worker with the production fetcher, detector and suggester."""
    from app.features.scan.services.detection.axe_detector import AxeSeleniumDetector
    from app.features.scan.services.fetch.page_fetcher import PageFetcher
    from app.features.scan.services.suggestions.fix_suggester import OpenAIFixSuggester

    suggester = None
    if settings.OPENAI_API_KEY:
        suggester = OpenAIFixSuggester(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_MODEL,
            base_url=settings.OPENAI_BASE_URL,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
        )
    else:
        logger.warning("OPENAI_API_KEY not set, AI fix suggestions will be replaced by a placeholder")

    processor = ScanProcessor(
        fetcher=PageFetcher(
            user_agent=settings.SCAN_USER_AGENT,
            timeout=settings.SCAN_FETCH_TIMEOUT_SECONDS,
        ),
        detector=AxeSeleniumDetector(headless=settings.SELENIUM_HEADLESS),
        suggester=suggester,
    )
    return ScanWorker(
        queue=queue,
        processor=processor,
        concurrency=settings.SCAN_WORKER_CONCURRENCY,
        poll_interval=settings.SCAN_WORKER_POLL_SECONDS,
        job_timeout=settings.SCAN_JOB_TIMEOUT_SECONDS,
    )


def main() -> int:
    from app.features.scan.dependencies import get_job_queue

    logger.info("Starting accessibility scan worker")
    queue = get_job_queue()
    try:
        queue.ping()
    except Exception as e:
        logger.error(f"Cannot start worker without a reachable job store: {e}")
        return 1

    worker = build_scan_worker(queue)
    shutdown = threading.Event()

    def _handle_signal(signum, frame):
        logger.info(f"Received {signal.Signals(signum).name} - shutting down scan worker gracefully")
        shutdown.set()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    worker.start()
    logger.info(
        f"Worker configuration: backend={settings.SCAN_QUEUE_BACKEND}, "
        f"concurrency={worker.concurrency}, job_timeout={worker.job_timeout:g}s"
    )
    shutdown.wait()
    worker.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
