# Integrations module - external collaborators
from .ledger import EnrollmentVerifier, ManualReviewVerifier, SimulatedLedger, TransactionLedger

__all__ = ["EnrollmentVerifier", "ManualReviewVerifier", "SimulatedLedger", "TransactionLedger"]
