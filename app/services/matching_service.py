"""
Reference Matching Service
==========================
Resolves free-text insurer and insurance-line (ramo) names extracted from a
document against the tenant's reference tables.

Rules, first success wins:
1. Exact case-insensitive match
2. Keyword category match (insurance lines only)
3. Bidirectional substring match

The result is binary (a row or None). Within rules 2 and 3 the longest matched
text wins; equal lengths keep the reference list order.
"""

import logging
from typing import Callable, Dict, List, Optional, Any

from app.services.brokerage_db_service import brokerage_db_service

logger = logging.getLogger(__name__)


# Category -> synonyms. Iteration order is the matching priority.
RAMO_KEYWORDS: Dict[str, List[str]] = {
    "auto": ["auto", "automóvel", "automovel", "veículo", "veiculo", "carro"],
    "residencial": ["residencial", "residência", "residencia", "casa", "apartamento"],
    "vida": ["vida", "pessoal"],
    "empresarial": ["empresarial", "empresa", "comercial", "negócio", "negocio"],
    "saúde": ["saúde", "saude", "médico", "medico"],
    "viagem": ["viagem", "travel"],
    "responsabilidade civil": ["responsabilidade", "rc", "civil"],
    "transporte": ["transporte", "carga", "mercadoria"],
}


def _normalize(value: Optional[str]) -> str:
    return (value or "").lower().strip()


def _longest_match(
    rows: List[Dict[str, Any]],
    field: str,
    matched_terms: Callable[[str], List[str]],
) -> Optional[Dict[str, Any]]:
    """Row whose matched text is longest; ties keep the first row."""
    best = None
    best_length = 0

    for row in rows:
        reference = _normalize(row.get(field))
        if not reference:
            continue

        terms = matched_terms(reference)
        if not terms:
            continue

        length = max(len(term) for term in terms)
        if length > best_length:
            best = row
            best_length = length

    return best


def match_reference(
    name: Optional[str],
    rows: List[Dict[str, Any]],
    field: str = "name",
    keywords: Optional[Dict[str, List[str]]] = None,
) -> Optional[Dict[str, Any]]:
    """
    Find the reference row that best matches an extracted name.

    Args:
        name: Free-text name taken from the document
        rows: Tenant reference rows, in natural order
        field: Key holding the reference name in each row
        keywords: Optional category -> synonyms table

    Returns:
        The matching row or None
    """
    normalized = _normalize(name)
    if not normalized or not rows:
        return None

    # 1. Exact match
    for row in rows:
        if _normalize(row.get(field)) == normalized:
            return row

    # 2. Keyword category match
    if keywords:
        for category, synonyms in keywords.items():
            if not any(synonym in normalized for synonym in synonyms):
                continue

            terms = [category, *synonyms]
            match = _longest_match(
                rows, field, lambda reference: [t for t in terms if t in reference]
            )
            if match:
                return match

    # 3. Bidirectional substring match
    def contained(reference: str) -> List[str]:
        if normalized in reference:
            return [normalized]
        if reference in normalized:
            return [reference]
        return []

    return _longest_match(rows, field, contained)


class MatchingService:
    """Async lookups of insurers and insurance lines, scoped by tenant."""

    def __init__(self, db=None):
        self.db = db if db is not None else brokerage_db_service

    async def match_seguradora(self, nome: Optional[str], user_id: str) -> Optional[Dict[str, Any]]:
        """Match an insurer name against the tenant's companies."""
        if not nome:
            return None

        try:
            companies = await self.db.list_companies(user_id)
        except Exception as e:
            logger.error(f"❌ Error fetching companies for matching: {e}")
            return None

        match = match_reference(nome, companies, field="name")
        if match:
            logger.debug(f"🏢 Insurer '{nome}' → {match.get('name')}")
        else:
            logger.info(f"⚠️  No insurer match for '{nome}'")
        return match

    async def match_ramo(self, nome: Optional[str], user_id: str) -> Optional[Dict[str, Any]]:
        """Match an insurance-line name against the tenant's ramos."""
        if not nome:
            return None

        try:
            ramos = await self.db.list_ramos(user_id)
        except Exception as e:
            logger.error(f"❌ Error fetching ramos for matching: {e}")
            return None

        match = match_reference(nome, ramos, field="nome", keywords=RAMO_KEYWORDS)
        if match:
            logger.debug(f"📂 Ramo '{nome}' → {match.get('nome')}")
        else:
            logger.info(f"⚠️  No ramo match for '{nome}'")
        return match


# Global instance
matching_service = MatchingService()
