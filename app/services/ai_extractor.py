"""
AI Field Extraction Service
===========================
Maps the raw text of one or more policy documents to structured policy records
through a single function-calling chat completion on the AI gateway.

Every record returned by the model is validated with BulkOCRExtractedPolicy;
invalid records are dropped and reported back to the caller.
"""

import json
import logging
from typing import Dict, List, Optional, Tuple

import openai
from pydantic import ValidationError

from app.core.config import settings
from app.core.openai_client import openai_client
from app.models.policy_import_model import BulkOCRExtractedPolicy, FileExtractionError
from app.services.rate_limiter import RateLimitedError

logger = logging.getLogger(__name__)


class AIExtractionError(Exception):
    """The AI gateway call failed or returned no structured data."""
    pass


class AIRateLimitError(AIExtractionError, RateLimitedError):
    """Gateway answered 429."""
    pass


class AICreditsError(AIExtractionError):
    """Gateway answered 402 (account out of credits)."""
    pass


SYSTEM_PROMPT = """Você é um especialista em extração de dados de apólices de seguro brasileiras.
Analise o texto extraído de múltiplos documentos de seguro.

REGRAS IMPORTANTES:
1. Para cada documento separado por "=== DOCUMENTO: ... ===" extraia os dados
2. Retorne SEMPRE um array JSON, mesmo para um único documento
3. CPF: formato XXX.XXX.XXX-XX, CNPJ: formato XX.XXX.XXX/XXXX-XX
4. Datas: formato YYYY-MM-DD
5. Valores numéricos: sem R$, pontos de milhar. Use ponto como decimal
6. Se não encontrar um campo, use null
7. Para ramo_seguro, normalize para: "Auto", "Residencial", "Vida", "Empresarial", "Saúde", "Viagem", "Transporte", etc.
8. tipo_operacao: RENOVACAO, NOVA ou ENDOSSO quando o documento indicar
9. arquivo_origem deve conter o nome do arquivo do documento de onde os dados foram extraídos"""


_NULLABLE_STRING = {"type": "string", "nullable": True}

EXTRACT_POLICIES_TOOL = {
    "type": "function",
    "function": {
        "name": "extract_policies",
        "description": "Extrai dados estruturados de apólices de seguro",
        "parameters": {
            "type": "object",
            "properties": {
                "policies": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "properties": {
                            "nome_cliente": {"type": "string"},
                            "cpf_cnpj": _NULLABLE_STRING,
                            "email": _NULLABLE_STRING,
                            "telefone": _NULLABLE_STRING,
                            "numero_apolice": {"type": "string"},
                            "nome_seguradora": {"type": "string"},
                            "ramo_seguro": {"type": "string"},
                            "descricao_bem": _NULLABLE_STRING,
                            "objeto_segurado": _NULLABLE_STRING,
                            "identificacao_adicional": _NULLABLE_STRING,
                            "tipo_operacao": {
                                "type": "string",
                                "enum": ["RENOVACAO", "NOVA", "ENDOSSO"],
                                "nullable": True,
                            },
                            "titulo_sugerido": _NULLABLE_STRING,
                            "data_inicio": {"type": "string"},
                            "data_fim": {"type": "string"},
                            "premio_liquido": {"type": "number"},
                            "premio_total": {"type": "number"},
                            "arquivo_origem": {"type": "string"},
                        },
                        "required": [
                            "nome_cliente",
                            "numero_apolice",
                            "nome_seguradora",
                            "ramo_seguro",
                            "arquivo_origem",
                        ],
                    },
                }
            },
            "required": ["policies"],
        },
    },
}


def build_aggregated_text(documents: List[Tuple[str, str]]) -> str:
    """Join (file_name, text) pairs into "=== DOCUMENTO: name ===" blocks."""
    return "".join(f"\n\n=== DOCUMENTO: {name} ===\n{text}\n" for name, text in documents)


def _user_prompt(count: int, aggregated_text: str) -> str:
    return f"""Extraia os dados dos {count} documento(s) abaixo.

TEXTO EXTRAÍDO:
{aggregated_text}

Retorne um array JSON com os seguintes campos para cada documento:
{{
  "nome_cliente": "string",
  "cpf_cnpj": "string | null",
  "email": "string | null",
  "telefone": "string | null",
  "numero_apolice": "string",
  "nome_seguradora": "string",
  "ramo_seguro": "string",
  "descricao_bem": "string | null",
  "tipo_operacao": "RENOVACAO | NOVA | ENDOSSO | null",
  "data_inicio": "YYYY-MM-DD",
  "data_fim": "YYYY-MM-DD",
  "premio_liquido": number,
  "premio_total": number,
  "arquivo_origem": "nome do arquivo fonte"
}}"""


def _first_validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    return f"{location}: {first.get('msg')}" if location else str(first.get("msg"))


class AIExtractor:
    """Client for the extract_policies function call."""

    def __init__(self, client=None, model: Optional[str] = None):
        self.client = client if client is not None else openai_client
        self.model = model or settings.AI_MODEL

    async def _complete(self, messages: List[Dict]):
        try:
            return await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                tools=[EXTRACT_POLICIES_TOOL],
                tool_choice={"type": "function", "function": {"name": "extract_policies"}},
                temperature=settings.TEMPERATURE,
            )
        except openai.RateLimitError as e:
            logger.warning(f"⚠️  [IA] Rate limit: {e}")
            raise AIRateLimitError("Rate limit da IA atingido. Aguarde alguns segundos.") from e
        except openai.APIStatusError as e:
            logger.error(f"❌ [IA] API error {e.status_code}: {e}")
            if e.status_code == 402:
                raise AICreditsError("Créditos insuficientes. Adicione créditos na sua conta.") from e
            raise AIExtractionError(f"Erro na IA: {e.status_code}") from e
        except openai.APIError as e:
            logger.error(f"❌ [IA] Gateway unreachable: {e}")
            raise AIExtractionError(f"Erro na IA: {e}") from e

    @staticmethod
    def _parse_tool_call(response) -> List[Dict]:
        try:
            tool_calls = response.choices[0].message.tool_calls or []
        except (AttributeError, IndexError):
            tool_calls = []

        if not tool_calls or not tool_calls[0].function.arguments:
            raise AIExtractionError("IA não retornou dados estruturados")

        try:
            payload = json.loads(tool_calls[0].function.arguments)
        except json.JSONDecodeError as e:
            raise AIExtractionError("IA retornou JSON inválido") from e

        policies = payload.get("policies") if isinstance(payload, dict) else payload
        if not isinstance(policies, list):
            raise AIExtractionError("IA não retornou dados estruturados")
        return policies

    async def extract_policies(
        self, documents: List[Tuple[str, str]]
    ) -> Tuple[List[BulkOCRExtractedPolicy], List[FileExtractionError]]:
        """
        Extract policy records from one or more documents in a single call.

        Args:
            documents: (file_name, text) pairs

        Returns:
            Tuple of (valid policy records, rejected records with the reason)

        Raises:
            AIRateLimitError: gateway rate limit (429)
            AICreditsError: insufficient credits (402)
            AIExtractionError: any other gateway failure or missing tool call
        """
        if not documents:
            return [], []

        if not settings.AI_GATEWAY_API_KEY and self.client is openai_client:
            raise AIExtractionError("Chave da API de IA não configurada")

        logger.info(f"🧠 [IA] Mapping {len(documents)} document(s)")

        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": _user_prompt(len(documents), build_aggregated_text(documents))},
        ]
        response = await self._complete(messages)
        raw_records = self._parse_tool_call(response)

        policies: List[BulkOCRExtractedPolicy] = []
        rejected: List[FileExtractionError] = []
        default_name = documents[0][0] if len(documents) == 1 else "desconhecido"

        for raw in raw_records:
            if isinstance(raw, dict) and not raw.get("arquivo_origem") and len(documents) == 1:
                raw = {**raw, "arquivo_origem": default_name}
            try:
                policies.append(BulkOCRExtractedPolicy.model_validate(raw))
            except ValidationError as e:
                source = raw.get("arquivo_origem") if isinstance(raw, dict) else None
                message = _first_validation_message(e)
                logger.warning(f"⚠️  [IA] Rejected record from {source or default_name}: {message}")
                rejected.append(FileExtractionError(
                    file_name=source or default_name,
                    error=f"Registro inválido retornado pela IA ({message})",
                ))

        logger.info(f"✅ [IA] {len(policies)} policies extracted, {len(rejected)} rejected")
        return policies, rejected


# Global instance
ai_extractor = AIExtractor()
