from .collector import CandidateCollector, build_candidate_filter
from .issuer import RewardIssuer, resolve_location_id
from .ledger import LedgerStatus, LedgerVerdict, ReferralLedger, decide
from .reconciler import (
    ReconciledDecision,
    ReferralSnapshot,
    index_candidates,
    is_qualified,
    reconcile,
    reconcile_record,
)
from .report import (
    ItemsSource,
    ReportError,
    ReportFailedError,
    ReportInitiationError,
    ReportLifecycleController,
    ReportRunState,
    ReportTimeoutError,
    extract_report_items,
)

__all__ = [
    "CandidateCollector",
    "ItemsSource",
    "LedgerStatus",
    "LedgerVerdict",
    "ReconciledDecision",
    "ReferralLedger",
    "ReferralSnapshot",
    "ReportError",
    "ReportFailedError",
    "ReportInitiationError",
    "ReportLifecycleController",
    "ReportRunState",
    "ReportTimeoutError",
    "RewardIssuer",
    "build_candidate_filter",
    "decide",
    "extract_report_items",
    "index_candidates",
    "is_qualified",
    "reconcile",
    "reconcile_record",
    "resolve_location_id",
]
