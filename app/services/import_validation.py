"""
Import item validation and review-time recalculation.
"""

from typing import List

from app.models.policy_import_model import PolicyImportItem
from app.utils.helpers import is_valid_iso_date


def calculate_estimated_commission(premio_liquido: float, commission_rate: float) -> float:
    return round((premio_liquido or 0.0) * (commission_rate or 0.0) / 100, 2)


def validate_import_item(item: PolicyImportItem) -> List[str]:
    """
    Check that an import item is ready to be committed.

    Returns:
        List of error messages; empty means the item is valid
    """
    errors: List[str] = []

    if not (item.client_name or "").strip():
        errors.append("Nome do cliente é obrigatório")

    if not (item.numero_apolice or "").strip():
        errors.append("Número da apólice é obrigatório")

    if not item.seguradora_id:
        errors.append("Seguradora é obrigatória")

    if not item.ramo_id:
        errors.append("Ramo é obrigatório")

    if not item.producer_id:
        errors.append("Produtor é obrigatório")

    if item.commission_rate is None or not (0 <= item.commission_rate <= 100):
        errors.append("Taxa de comissão deve estar entre 0 e 100%")

    if not item.data_inicio:
        errors.append("Data de início é obrigatória")
    elif not is_valid_iso_date(item.data_inicio):
        errors.append("Data de início inválida")

    if not item.data_fim:
        errors.append("Data de fim é obrigatória")
    elif not is_valid_iso_date(item.data_fim):
        errors.append("Data de fim inválida")

    if item.premio_liquido is None or item.premio_liquido <= 0:
        errors.append("Prêmio líquido deve ser maior que zero")

    return errors


def refresh_item(item: PolicyImportItem) -> PolicyImportItem:
    """Recompute the estimated commission and the validation state in place."""
    item.estimated_commission = calculate_estimated_commission(
        item.premio_liquido, item.commission_rate
    )
    item.validation_errors = validate_import_item(item)
    item.is_valid = not item.validation_errors
    return item
