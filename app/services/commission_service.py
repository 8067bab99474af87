"""
Commission Service
==================
Generates the pending commission transaction of a newly created policy.
"""

import logging
from datetime import date
from typing import Any, Dict, Optional

from app.models.document_model import PolicyRecord, TransactionRecord
from app.services.brokerage_db_service import brokerage_db_service

logger = logging.getLogger(__name__)

COMMISSION_TYPE_NAME = "Comissão"
COMMISSION_TYPE_NATURE = "GANHO"


class CommissionService:

    def __init__(self, db=None):
        self.db = db if db is not None else brokerage_db_service

    async def get_commission_type_id(self, user_id: str) -> str:
        """Oldest "Comissão" transaction type of the tenant, created when missing."""
        existing = await self.db.find_transaction_type(user_id, COMMISSION_TYPE_NAME)
        if existing:
            return existing["id"]

        logger.info(f"📝 Creating '{COMMISSION_TYPE_NAME}' transaction type for user {user_id}")
        return await self.db.insert_transaction_type(
            user_id, COMMISSION_TYPE_NAME, COMMISSION_TYPE_NATURE
        )

    async def generate_commission_transaction(
        self, policy_id: str, policy: PolicyRecord
    ) -> Optional[Dict[str, Any]]:
        """
        Create the commission transaction of a policy.

        Args:
            policy_id: ID of the inserted policy
            policy: The policy record as inserted

        Returns:
            The existing or created transaction, or None when the commission is zero
        """
        existing = await self.db.find_commission_transaction(policy_id, policy.user_id)
        if existing:
            logger.info(f"⚠️  Commission already exists for policy {policy.policy_number}")
            return existing

        type_id = await self.get_commission_type_id(policy.user_id)

        amount = round(policy.premium_value * policy.commission_rate / 100, 2)
        if amount <= 0:
            logger.info(f"⚠️  Zero commission for policy {policy.policy_number}, skipping")
            return None

        today = date.today().isoformat()
        transaction = await self.db.insert_transaction(TransactionRecord(
            user_id=policy.user_id,
            client_id=policy.client_id,
            policy_id=policy_id,
            type_id=type_id,
            description=f"Comissão da apólice {policy.policy_number}",
            amount=amount,
            date=today,
            transaction_date=today,
            due_date=policy.expiration_date,
            company_id=policy.insurance_company,
            brokerage_id=policy.brokerage_id,
            producer_id=policy.producer_id,
        ))

        logger.info(f"💰 Commission {amount:.2f} created for policy {policy.policy_number}")
        return transaction


# Global instance
commission_service = CommissionService()
