import pytest

from app.features.scan.services.scan.processor import ScanProcessor
from app.features.scan.workers.worker import ScanWorker
from tests.features.scan.scan_stubs import StubDetector, StubSuggester, make_fetcher


@pytest.fixture
def detector() -> StubDetector:
    return StubDetector()


@pytest.fixture
def suggester() -> StubSuggester:
    return StubSuggester()


@pytest.fixture
def processor(detector, suggester) -> ScanProcessor:
    return ScanProcessor(fetcher=make_fetcher(), detector=detector, suggester=suggester)


@pytest.fixture
def worker(queue, processor) -> ScanWorker:
    return ScanWorker(queue=queue, processor=processor, concurrency=2, poll_interval=0.01, job_timeout=5.0)
