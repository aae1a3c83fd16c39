"""Risk classification and approval workflow for voicecode.

Public API:
    RiskClassifier -- Pattern-based risk detection
    ApprovalBroker -- Per-connection pending approvals
"""

from voicecode.approval.risk import DEFAULT_APPROVAL_PATTERNS, RiskAssessment, RiskClassifier
from voicecode.approval.workflow import ApprovalBroker, ApprovalDecision, PendingApproval

__all__ = [
    "DEFAULT_APPROVAL_PATTERNS",
    "ApprovalBroker",
    "ApprovalDecision",
    "PendingApproval",
    "RiskAssessment",
    "RiskClassifier",
]
