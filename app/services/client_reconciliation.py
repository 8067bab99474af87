"""
Client Reconciliation Service
=============================
Decides whether an extracted client identity refers to an existing client of
the tenant or to a new one.

CPF/CNPJ is tried first, then email. Lookup errors are logged and treated as a
miss, so reconciliation only ever degrades toward "new client".
"""

import re
import logging
from typing import Optional

from app.models.policy_import_model import (
    ClientReconcileResult,
    ClientReconcileStatus,
    ExtractedPolicyData,
    MatchedBy,
)
from app.services.brokerage_db_service import brokerage_db_service

logger = logging.getLogger(__name__)


def normalize_cpf_cnpj(value: Optional[str]) -> Optional[str]:
    """
    Strip every non-digit character from a CPF/CNPJ.

    Returns None for empty input.
    """
    if not value:
        return None
    return re.sub(r"\D", "", value)


class ClientReconciliationService:

    def __init__(self, db=None):
        self.db = db if db is not None else brokerage_db_service

    async def find_client_by_cpf_cnpj(self, cpf_cnpj: Optional[str], user_id: str):
        normalized = normalize_cpf_cnpj(cpf_cnpj)
        if not normalized:
            return None

        try:
            return await self.db.find_client_by_cpf_cnpj(normalized, user_id)
        except Exception as e:
            logger.error(f"❌ Error finding client by CPF/CNPJ: {e}")
            return None

    async def find_client_by_email(self, email: Optional[str], user_id: str):
        if not email or not email.strip():
            return None

        try:
            return await self.db.find_client_by_email(email.strip(), user_id)
        except Exception as e:
            logger.error(f"❌ Error finding client by email: {e}")
            return None

    async def reconcile_client(
        self, extracted: ExtractedPolicyData, user_id: str
    ) -> ClientReconcileResult:
        """
        Match the extracted client against the tenant's clients.

        Args:
            extracted: Data extracted from the policy document
            user_id: Tenant ID

        Returns:
            ClientReconcileResult with status matched (plus client ID and the
            identifier used) or new
        """
        cliente = extracted.cliente

        if cliente.cpf_cnpj:
            client = await self.find_client_by_cpf_cnpj(cliente.cpf_cnpj, user_id)
            if client:
                logger.info(f"🔗 Client matched by CPF/CNPJ → {client['id']}")
                return ClientReconcileResult(
                    status=ClientReconcileStatus.MATCHED,
                    client_id=client["id"],
                    matched_by=MatchedBy.CPF_CNPJ,
                )

        if cliente.email:
            client = await self.find_client_by_email(cliente.email, user_id)
            if client:
                logger.info(f"🔗 Client matched by email → {client['id']}")
                return ClientReconcileResult(
                    status=ClientReconcileStatus.MATCHED,
                    client_id=client["id"],
                    matched_by=MatchedBy.EMAIL,
                )

        logger.info(f"🆕 New client: {cliente.nome_completo or 'N/A'}")
        return ClientReconcileResult(status=ClientReconcileStatus.NEW)


# Global instance
client_reconciliation_service = ClientReconciliationService()
