"""
Scan models package.
"""
from app.features.scan.models.scan_job import ScanJobRecord

__all__ = ["ScanJobRecord"]
