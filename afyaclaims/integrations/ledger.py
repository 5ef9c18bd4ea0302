"""
Transaction Ledger Collaborator

Supplies the opaque attestation hash recorded on approved claims. The
simulated ledger stands in for an external network; the claims engine only
depends on the TransactionLedger interface.
"""
import asyncio
import hashlib
import json
import logging
from typing import Optional

from afyaclaims.core.errors import DependencyError
from afyaclaims.core.models import Claim, new_id

logger = logging.getLogger(__name__)


class TransactionLedger:
    """Interface for ledgers that attest claim settlements."""

    async def record_claim(self, claim: Claim) -> str:
        """
        Record an approved claim and return its transaction hash.

        Raises:
            DependencyError: If the ledger cannot record the claim
        """
        raise NotImplementedError


class SimulatedLedger(TransactionLedger):
    """
    In-process ledger producing deterministic-looking transaction hashes.

    Args:
        delay: Seconds of simulated network latency per call
        available: When False every call fails, as if the network were down
    """

    def __init__(self, delay: float = 0.0, available: bool = True):
        self.delay = delay
        self.available = available
        self.block_number = 1000000
        self.calls = 0

    async def record_claim(self, claim: Claim) -> str:
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)

        if not self.available:
            logger.error(f"Ledger unavailable while recording claim {claim.id}")
            raise DependencyError("Ledger service is unavailable; please retry")

        self.block_number += 1
        payload = json.dumps(
            {
                "claimId": claim.id,
                "policyId": claim.policy_id,
                "patientId": claim.patient_id,
                "facilityId": claim.facility_id,
                "claimAmount": claim.claim_amount,
                "block": self.block_number,
                "nonce": new_id(),
            },
            sort_keys=True,
        )
        tx_hash = "0x" + hashlib.sha256(payload.encode("utf-8")).hexdigest()
        logger.info(f"Claim {claim.id} recorded in block {self.block_number}: {tx_hash[:18]}...")
        return tx_hash


class EnrollmentVerifier:
    """Decides whether a new policy can start active or must await verification."""

    async def requires_verification(self, owner_id: str, tier: str) -> bool:
        return False


class ManualReviewVerifier(EnrollmentVerifier):
    """Sends every enrollment, or only the listed tiers, to manual verification."""

    def __init__(self, tiers: Optional[set] = None):
        self.tiers = tiers

    async def requires_verification(self, owner_id: str, tier: str) -> bool:
        return self.tiers is None or tier in self.tiers
