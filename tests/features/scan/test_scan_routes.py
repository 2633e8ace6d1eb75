from app.features.scan.schemas.scan import JobState
from app.features.scan.services.scan.processor import ScanProcessor
from app.features.scan.workers.worker import ScanWorker
from tests.features.scan.scan_stubs import AXE_VIOLATIONS, drain, make_fetcher

SCAN_URL = "/api/v1/scan"
STATUS_URL = "/api/v1/scan/status"


def start_scan(client, url="https://example.com", include_ai_fixes=True, ip=None):
    headers = {"X-Forwarded-For": ip} if ip else {}
    return client.post(SCAN_URL, json={"url": url, "includeAIFixes": include_ai_fixes}, headers=headers)


def get_status(client, job_id):
    return client.get(STATUS_URL, params={"jobId": job_id})


class TestStartScan:

    def test_accepts_scan(self, client, queue):
        response = start_scan(client)

        assert response.status_code == 202
        payload = response.json()
        assert payload["status"] == "success"
        assert payload["message"] == "Scan job started successfully"
        job_id = payload["data"]["jobId"]
        assert payload["data"]["statusUrl"] == f"{STATUS_URL}?jobId={job_id}"
        assert payload["data"]["url"] == "https://example.com"

        job = queue.read(job_id)
        assert job.state == JobState.waiting
        assert job.include_fix_suggestions is True
        assert job.submitter_identity == "testclient"

    def test_ai_fixes_flag_is_stored(self, client, queue):
        job_id = start_scan(client, include_ai_fixes=False).json()["data"]["jobId"]
        assert queue.read(job_id).include_fix_suggestions is False

    def test_ai_fixes_default_on(self, client, queue):
        response = client.post(SCAN_URL, json={"url": "https://example.com"})
        assert queue.read(response.json()["data"]["jobId"]).include_fix_suggestions is True

    def test_missing_url(self, client, queue):
        response = client.post(SCAN_URL, json={})

        assert response.status_code == 400
        assert response.json()["message"] == "Missing URL in request body"
        assert queue.counts()["waiting"] == 0

    def test_missing_body(self, client, queue):
        response = client.post(SCAN_URL)

        assert response.status_code == 400
        assert response.json()["message"] == "Missing URL in request body"
        assert response.json()["data"] == {"code": "validation_error"}
        assert queue.counts()["waiting"] == 0

    def test_null_body(self, client, queue):
        response = client.post(SCAN_URL, content="null", headers={"Content-Type": "application/json"})

        assert response.status_code == 400
        assert response.json()["message"] == "Missing URL in request body"
        assert queue.counts()["waiting"] == 0

    def test_blank_url(self, client, queue):
        response = start_scan(client, url="   ")

        assert response.status_code == 400
        assert queue.counts()["waiting"] == 0

    def test_rejected_request_does_not_use_up_window(self, client):
        assert client.post(SCAN_URL, json={}).status_code == 400
        assert start_scan(client).status_code == 202

    def test_url_syntax_is_not_checked_at_submission(self, client):
        response = start_scan(client, url="not-a-url")

        assert response.status_code == 202
        assert response.json()["data"]["url"] == "not-a-url"

    def test_second_submission_within_a_minute(self, client, queue, clock):
        assert start_scan(client).status_code == 202

        response = start_scan(client, url="https://example.org")

        assert response.status_code == 429
        assert response.json()["status"] == "error"
        assert response.json()["message"] == "Too many scan requests, please wait a minute."
        assert response.headers["Retry-After"] == "60"
        assert response.json()["data"] == {"code": "rate_limited", "retryAfter": 60}
        assert queue.counts()["waiting"] == 1

        clock.advance(60)
        assert start_scan(client, url="https://example.org").status_code == 202

    def test_rate_limit_is_per_client(self, client):
        assert start_scan(client, ip="203.0.113.7").status_code == 202
        assert start_scan(client, ip="203.0.113.8, 10.0.0.1").status_code == 202
        assert start_scan(client, ip="203.0.113.7").status_code == 429


class TestScanStatus:

    def test_job_id_required(self, client):
        response = client.get(STATUS_URL)

        assert response.status_code == 400
        assert response.json()["message"] == "Job ID is required"

    def test_unknown_job(self, client):
        response = get_status(client, "missing-job")

        assert response.status_code == 404
        assert response.json()["message"] == "Job not found"

    def test_waiting_job(self, client):
        job_id = start_scan(client).json()["data"]["jobId"]

        response = get_status(client, job_id)

        assert response.status_code == 200
        assert response.json()["data"] == {"status": "waiting", "progress": 0}

    def test_active_job_reports_progress(self, client, queue):
        job_id = start_scan(client).json()["data"]["jobId"]
        job = queue.lease()
        queue.update_progress(job.id, job.lease_token, 40)

        data = get_status(client, job_id).json()["data"]

        assert data == {"status": "active", "progress": 40}

    def test_status_polling_is_not_rate_limited(self, client):
        job_id = start_scan(client).json()["data"]["jobId"]
        for _ in range(5):
            assert get_status(client, job_id).status_code == 200


class TestScanLifecycle:

    def test_successful_scan(self, client, queue, worker, detector):
        detector.violations = AXE_VIOLATIONS
        job_id = start_scan(client).json()["data"]["jobId"]

        assert worker.process_next() == JobState.completed
        data = get_status(client, job_id).json()["data"]

        assert data["status"] == "completed"
        assert data["progress"] == 100
        result = data["result"]
        assert result["url"] == "https://example.com"
        assert result["fixSuggestions"] == "fix text"
        assert result["summary"] == {"total": 2, "critical": 1, "serious": 1, "moderate": 0, "minor": 0}
        assert [v["ruleId"] for v in result["violations"]] == ["image-alt", "color-contrast"]
        assert result["violations"][0]["affectedElementCount"] == 2
        assert "timestamp" in result

    def test_clean_page_without_ai_fixes(self, client, worker):
        job_id = start_scan(client, include_ai_fixes=False).json()["data"]["jobId"]

        worker.process_next()
        result = get_status(client, job_id).json()["data"]["result"]

        assert result["violations"] == []
        assert result["summary"]["total"] == 0
        assert "fixSuggestions" not in result or result["fixSuggestions"] is None

    def test_unreachable_page_fails_after_retries(self, client, queue, detector, suggester):
        processor = ScanProcessor(fetcher=make_fetcher(status_code=404), detector=detector, suggester=suggester)
        worker = ScanWorker(queue=queue, processor=processor, poll_interval=0.01)
        job_id = start_scan(client, url="https://example.com/missing").json()["data"]["jobId"]

        job = drain(worker, queue, job_id)
        response = get_status(client, job_id)

        assert job.attempts == 3
        assert response.status_code == 200
        assert response.json()["data"] == {
            "status": "failed",
            "progress": 0,
            "error": "fetch_failed: HTTP 404: Not Found",
        }

    def test_single_violation_with_fix_text(self, client, worker, detector):
        detector.violations = [{"ruleId": "color-contrast", "impact": "serious", "affectedElementCount": 2}]
        job_id = start_scan(client).json()["data"]["jobId"]

        worker.process_next()
        result = get_status(client, job_id).json()["data"]["result"]

        assert result["summary"]["serious"] == 1
        assert result["summary"]["total"] == 1
        assert result["fixSuggestions"] == "fix text"
        assert result["violations"][0]["affectedElementCount"] == 2

    def test_resubmission_one_second_later_is_rate_limited(self, client, clock):
        first = start_scan(client)
        clock.advance(1)
        second = start_scan(client)

        assert first.status_code == 202
        assert first.json()["data"]["jobId"]
        assert second.status_code == 429
