"""
Scan Services

Organized by responsibility:

1. queue/ - Job store and lease protocol
   - base.py: JobQueue contract, retry and retention policies
   - memory.py: Process-local queue (tests, single instance)
   - sql.py: `scan_jobs` table queue shared by many workers

2. fetch/ - Page download
   - page_fetcher.py: httpx fetch with browser-like identity

3. detection/ - Accessibility rule engine adapters
   - violation_detector.py: Detector contract and violation normalization
   - axe_detector.py: axe-core in a per-job headless Chrome session

4. suggestions/ - LLM integration
   - fix_suggester.py: Remediation text and fallback placeholders

5. scan/ - Orchestration
   - processor.py: fetch -> detect -> suggest -> assemble, with progress checkpoints
   - gateway.py: submit/status used by the HTTP routes
"""
