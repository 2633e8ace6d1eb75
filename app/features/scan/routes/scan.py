from typing import Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status

from app.features.scan.dependencies import get_scan_gateway
from app.features.scan.exceptions import ScanValidationError
from app.features.scan.schemas.scan import ScanStartRequest, ScanStartResponse
from app.features.scan.services.scan.gateway import ScanGateway
from app.platform.logger import get_logger
from app.platform.response import api_response
from app.platform.utils.device import get_client_identity

logger = get_logger(__name__)

router = APIRouter(prefix="/scan", tags=["scan"])


@router.post("", status_code=status.HTTP_202_ACCEPTED)
def start_scan(
    request: Request,
    data: Optional[ScanStartRequest] = Body(default=None),
    gateway: ScanGateway = Depends(get_scan_gateway),
):
    """
    Queue an accessibility scan of `url`.

    Returns 202 with the job id and the status URL to poll. At most one scan
    per client per minute is accepted. A missing body is treated like a
    missing `url` (400).
    """
    if data is None:
        data = ScanStartRequest()

    job_id = gateway.submit(
        url=data.url or "",
        include_fix_suggestions=data.include_ai_fixes,
        submitter_identity=get_client_identity(request),
    )

    status_url = f"{request.app.url_path_for('get_scan_status')}?jobId={job_id}"
    response = ScanStartResponse(job_id=job_id, status_url=status_url, url=data.url.strip())
    return api_response(
        data=response,
        message="Scan job started successfully",
        status_code=status.HTTP_202_ACCEPTED,
    )


@router.get("/status", name="get_scan_status")
def get_scan_status(
    job_id: Optional[str] = Query(default=None, alias="jobId"),
    gateway: ScanGateway = Depends(get_scan_gateway),
):
    """Poll a scan job: progress while it runs, then its result or failure reason."""
    if not job_id:
        raise ScanValidationError("Job ID is required")

    job_status = gateway.status(job_id)
    return api_response(data=job_status, message="Scan status retrieved")
