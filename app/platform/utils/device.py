from fastapi import Request

from app.platform.logger import get_logger

logger = get_logger(__name__)


def get_client_identity(request: Request) -> str:
    """
    Identity used for submission rate limiting: first hop of X-Forwarded-For,
    falling back to the socket peer address.
    """
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first_hop = forwarded.split(",")[0].strip()
        if first_hop:
            return first_hop

    client_ip = request.client.host if request.client else "unknown"
    if client_ip == "unknown":
        logger.warning("Request has no client address, rate limiting under 'unknown'")
    return client_ip
