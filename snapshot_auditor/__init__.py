"""
GKE snapshot auditor: keeps bound persistent volumes on a snapshot schedule
and reports on snapshot freshness.
"""

from .config import AuditConfig, ConfigError
from .models import ReportRow, SweepOutcome, SweepStatus, Volume
from .reconciler import PolicyReconciler

__version__ = "0.1.0"

__all__ = [
    "AuditConfig",
    "ConfigError",
    "PolicyReconciler",
    "ReportRow",
    "SweepOutcome",
    "SweepStatus",
    "Volume",
]
