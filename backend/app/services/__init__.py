"""
Business logic services.
"""
from app.services.quota_ledger import QuotaLedger, QuotaDecision
from app.services.generation_service import GenerationService
from app.services.history_service import HistoryService

__all__ = [
    "QuotaLedger",
    "QuotaDecision",
    "GenerationService",
    "HistoryService",
]
