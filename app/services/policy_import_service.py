"""
Policy Import Service
=====================
Drives an import session through upload -> processing -> review -> complete.

Processing modes:
- bulk-ocr: files in batches, one OCR + AI analysis per batch, fixed delay between batches
- standard: one file at a time, fixed delay between files, retry with backoff on rate limits

Commit creates client, policy and commission per item, independently:
one failing item never blocks the others and nothing is rolled back.
"""

import math
import asyncio
import logging
from functools import partial
from typing import Any, Dict, List, Optional, Tuple

from app.core.config import settings
from app.core.tenant import TenantContext
from app.models.document_model import ClientRecord, PolicyRecord
from app.models.policy_import_model import (
    BulkOCRExtractedPolicy,
    ClientReconcileStatus,
    FileExtractionError,
    FileProcessingStatus,
    ImportFileState,
    ImportItemDetail,
    ImportSession,
    ImportStep,
    PolicyImportItem,
    PolicyImportResult,
    ProcessingMode,
    SourceDocument,
)
from app.services.brokerage_db_service import brokerage_db_service
from app.services.client_reconciliation import client_reconciliation_service
from app.services.commission_service import commission_service
from app.services.document_analyzer import document_analyzer
from app.services.import_session_store import (
    ImportSessionError,
    ImportSessionNotFoundError,
    import_session_store,
)
from app.services.import_validation import refresh_item
from app.services.matching_service import matching_service
from app.services.rate_limiter import FixedDelayRateLimiter, RateLimitRetryPolicy
from app.services.storage_service import storage_service

logger = logging.getLogger(__name__)

EXTRACTION_ERROR_MESSAGE = "Erro na extração via IA"

# Review fields the user may edit
EDITABLE_FIELDS = {
    "client_name",
    "seguradora_id",
    "seguradora_nome",
    "ramo_id",
    "ramo_nome",
    "producer_id",
    "commission_rate",
    "numero_apolice",
    "data_inicio",
    "data_fim",
    "objeto_segurado",
    "premio_liquido",
    "premio_total",
}


class PolicyImportService:

    def __init__(
        self,
        store=None,
        db=None,
        analyzer=None,
        reconciler=None,
        matcher=None,
        storage=None,
        commissions=None,
        batch_limiter: Optional[FixedDelayRateLimiter] = None,
        file_limiter: Optional[FixedDelayRateLimiter] = None,
        retry_policy: Optional[RateLimitRetryPolicy] = None,
    ):
        self.store = store if store is not None else import_session_store
        self.db = db if db is not None else brokerage_db_service
        self.analyzer = analyzer if analyzer is not None else document_analyzer
        self.reconciler = reconciler if reconciler is not None else client_reconciliation_service
        self.matcher = matcher if matcher is not None else matching_service
        self.storage = storage if storage is not None else storage_service
        self.commissions = commissions if commissions is not None else commission_service

        self.batch_limiter = batch_limiter or FixedDelayRateLimiter(settings.OCR_BATCH_DELAY_SECONDS)
        self.file_limiter = file_limiter or FixedDelayRateLimiter(settings.FILE_DELAY_SECONDS)
        self.retry_policy = retry_policy or RateLimitRetryPolicy(
            settings.MAX_RATE_LIMIT_RETRIES, settings.RATE_LIMIT_BACKOFF_SECONDS
        )

    # =========================================================================
    # SESSION LIFECYCLE
    # =========================================================================

    def create_session(self, tenant: TenantContext) -> ImportSession:
        return self.store.create(tenant.user_id)

    def get_session(self, session_id: str, tenant: TenantContext) -> ImportSession:
        return self.store.get(session_id, tenant.user_id)

    def cancel(self, session_id: str, tenant: TenantContext) -> None:
        """Discard a session. Calls already in flight are not interrupted."""
        session = self.store.get(session_id, tenant.user_id)
        self.store.remove(session.id)
        logger.info(f"🗑️  Import session cancelled: {session.id}")

    @staticmethod
    def _require_step(session: ImportSession, step: ImportStep) -> None:
        if session.step != step:
            raise ImportSessionError(
                f"Operação não permitida na etapa '{session.step.value}' (esperado '{step.value}')"
            )

    def add_files(
        self,
        session: ImportSession,
        documents: List[SourceDocument],
        warnings: Optional[List[str]] = None,
    ) -> ImportSession:
        """Attach uploaded documents to a session still in the upload step."""
        self._require_step(session, ImportStep.UPLOAD)

        if len(session.documents) + len(documents) > settings.MAX_FILES_PER_IMPORT:
            raise ImportSessionError(
                f"Limite de {settings.MAX_FILES_PER_IMPORT} arquivos por importação excedido"
            )

        for document in documents:
            if session.find_document(document.file_name):
                session.warnings.append(f"{document.file_name}: arquivo já adicionado")
                continue
            session.documents.append(document)
            session.files.append(ImportFileState(file_name=document.file_name, size=document.size))

        session.warnings.extend(warnings or [])
        session.touch()
        logger.info(f"📁 Session {session.id}: {len(session.documents)} file(s) ready")
        return session

    def remove_file(self, session: ImportSession, file_name: str) -> ImportSession:
        self._require_step(session, ImportStep.UPLOAD)
        if not session.find_document(file_name):
            raise ImportSessionNotFoundError(f"Arquivo não encontrado: {file_name}")

        session.documents = [d for d in session.documents if d.file_name != file_name]
        session.files = [f for f in session.files if f.file_name != file_name]
        session.touch()
        return session

    # =========================================================================
    # PROCESSING
    # =========================================================================

    async def process(
        self,
        session: ImportSession,
        tenant: TenantContext,
        mode: Optional[ProcessingMode] = None,
    ) -> ImportSession:
        """
        Extract every uploaded document and build the review items.

        The session ends in review when at least one item was produced,
        otherwise it goes back to upload with the errors recorded.
        """
        self._require_step(session, ImportStep.UPLOAD)
        if not session.documents:
            raise ImportSessionError("Nenhum arquivo para processar")

        session.mode = mode or session.mode
        session.step = ImportStep.PROCESSING
        session.errors = []
        session.items = []
        for state in session.files:
            state.status = FileProcessingStatus.PENDING
            state.error = None
        session.touch()

        logger.info(
            f"🚀 Processing session {session.id}: {len(session.documents)} file(s), mode={session.mode.value}"
        )

        try:
            if session.mode == ProcessingMode.BULK_OCR:
                items = await self._process_bulk(session, tenant)
            else:
                items = await self._process_standard(session, tenant)
        except Exception:
            session.step = ImportStep.UPLOAD
            session.touch()
            raise

        session.items = items
        session.step = ImportStep.REVIEW if items else ImportStep.UPLOAD
        session.touch()

        if items:
            logger.info(f"✅ Session {session.id}: {len(items)} policies ready for review")
        else:
            logger.warning(f"⚠️  Session {session.id}: no document was processed successfully")
        return session

    def _set_status(
        self,
        session: ImportSession,
        file_name: str,
        status: FileProcessingStatus,
        error: Optional[str] = None,
    ) -> None:
        state = session.file_state(file_name)
        if state is not None:
            state.status = status
            state.error = error
        session.touch()

    async def _process_bulk(self, session: ImportSession, tenant: TenantContext) -> List[PolicyImportItem]:
        batch_size = max(1, settings.OCR_BATCH_SIZE)
        batches = [
            session.documents[i:i + batch_size]
            for i in range(0, len(session.documents), batch_size)
        ]
        session.total_batches = len(batches)

        extracted: List[Tuple[BulkOCRExtractedPolicy, str]] = []

        for index, batch in enumerate(batches, start=1):
            await self.batch_limiter.wait()

            session.current_batch = index
            for document in batch:
                self._set_status(session, document.file_name, FileProcessingStatus.PROCESSING)

            logger.info(f"📦 Batch {index}/{len(batches)}: {len(batch)} file(s)")

            try:
                result = await self.analyzer.analyze_files(batch)
            except Exception as e:
                logger.error(f"❌ Batch {index} failed: {e}")
                for document in batch:
                    self._set_status(session, document.file_name, FileProcessingStatus.ERROR, str(e))
                session.errors.append(FileExtractionError(file_name=f"Lote {index}", error=str(e)))
                continue

            for file_name in result.processed_files:
                self._set_status(session, file_name, FileProcessingStatus.SUCCESS)
            for error in result.errors:
                if error.file_name not in result.processed_files:
                    self._set_status(session, error.file_name, FileProcessingStatus.ERROR, error.error)
            session.errors.extend(result.errors)

            batch_names = {document.file_name for document in batch}
            for policy in result.data:
                # Records naming an unknown file are attached to the batch's first file
                source = policy.arquivo_origem if policy.arquivo_origem in batch_names else batch[0].file_name
                extracted.append((policy, source))

        logger.info(f"🔗 Reconciling {len(extracted)} extracted policies")
        return list(await asyncio.gather(
            *(self._build_item(policy, source, tenant.user_id) for policy, source in extracted)
        ))

    async def _analyze_with_retry(self, session: ImportSession, document: SourceDocument) -> BulkOCRExtractedPolicy:
        def on_rate_limited(attempt: int, error: Exception) -> None:
            self._set_status(
                session, document.file_name, FileProcessingStatus.RATE_LIMITED,
                f"{error} (tentativa {attempt}/{self.retry_policy.max_retries})",
            )

        return await self.retry_policy.run(
            partial(self.analyzer.analyze_file, document),
            on_rate_limited=on_rate_limited,
        )

    async def _process_standard(self, session: ImportSession, tenant: TenantContext) -> List[PolicyImportItem]:
        items: List[PolicyImportItem] = []
        total = len(session.documents)

        for index, document in enumerate(session.documents, start=1):
            await self.file_limiter.wait()

            logger.info(f"📄 [{index}/{total}] {document.file_name}")
            self._set_status(session, document.file_name, FileProcessingStatus.PROCESSING)

            try:
                policy = await self._analyze_with_retry(session, document)
                item = await self._build_item(policy, document.file_name, tenant.user_id, file_name=document.file_name)
                self._set_status(session, document.file_name, FileProcessingStatus.SUCCESS)
            except Exception as e:
                logger.error(f"❌ Error processing {document.file_name}: {e}")
                self._set_status(session, document.file_name, FileProcessingStatus.ERROR, str(e))
                session.errors.append(FileExtractionError(file_name=document.file_name, error=str(e)))
                item = self._error_item(document, str(e))

            items.append(item)

        return items

    async def _build_item(
        self,
        policy: BulkOCRExtractedPolicy,
        source_file: str,
        user_id: str,
        file_name: Optional[str] = None,
        item_id: Optional[str] = None,
        commission_rate: Optional[float] = None,
    ) -> PolicyImportItem:
        extracted = policy.to_extracted()

        reconciled, seguradora, ramo = await asyncio.gather(
            self.reconciler.reconcile_client(extracted, user_id),
            self.matcher.match_seguradora(policy.nome_seguradora, user_id),
            self.matcher.match_ramo(policy.ramo_seguro, user_id),
        )

        item = PolicyImportItem(
            file_name=file_name or policy.arquivo_origem,
            source_file=source_file,
            extracted=extracted,
            client_status=reconciled.status,
            client_id=reconciled.client_id,
            client_name=policy.nome_cliente,
            client_cpf_cnpj=policy.cpf_cnpj,
            matched_by=reconciled.matched_by,
            seguradora_id=seguradora["id"] if seguradora else None,
            seguradora_nome=policy.nome_seguradora,
            ramo_id=ramo["id"] if ramo else None,
            ramo_nome=policy.ramo_seguro,
            commission_rate=(
                commission_rate if commission_rate is not None else settings.DEFAULT_COMMISSION_RATE
            ),
            numero_apolice=policy.numero_apolice,
            data_inicio=policy.data_inicio,
            data_fim=policy.data_fim,
            objeto_segurado=policy.descricao_bem or policy.objeto_segurado or "",
            premio_liquido=policy.premio_liquido,
            premio_total=policy.premio_total,
            is_processed=True,
        )
        if item_id:
            item.id = item_id

        return refresh_item(item)

    @staticmethod
    def _error_item(document: SourceDocument, message: str) -> PolicyImportItem:
        return PolicyImportItem(
            file_name=document.file_name,
            source_file=document.file_name,
            commission_rate=settings.DEFAULT_COMMISSION_RATE,
            is_valid=False,
            validation_errors=[EXTRACTION_ERROR_MESSAGE],
            is_processed=False,
            process_error=message or "Falha ao processar",
        )

    # =========================================================================
    # REVIEW
    # =========================================================================

    def _get_item(self, session: ImportSession, item_id: str) -> PolicyImportItem:
        item = session.find_item(item_id)
        if item is None:
            raise ImportSessionNotFoundError(f"Item não encontrado: {item_id}")
        return item

    def update_item(self, session: ImportSession, item_id: str, updates: Dict[str, Any]) -> PolicyImportItem:
        """Apply user edits to a review item, then recompute commission and validation."""
        self._require_step(session, ImportStep.REVIEW)
        item = self._get_item(session, item_id)

        unknown = set(updates) - EDITABLE_FIELDS
        if unknown:
            raise ImportSessionError(f"Campos não editáveis: {', '.join(sorted(unknown))}")

        for field, value in updates.items():
            setattr(item, field, value)

        session.touch()
        return refresh_item(item)

    def remove_item(self, session: ImportSession, item_id: str) -> None:
        self._require_step(session, ImportStep.REVIEW)
        item = self._get_item(session, item_id)
        session.items.remove(item)
        session.touch()

    def apply_batch_producer(self, session: ImportSession, producer_id: str) -> ImportSession:
        self._require_step(session, ImportStep.REVIEW)
        if not producer_id:
            raise ImportSessionError("Produtor é obrigatório")

        for item in session.items:
            item.producer_id = producer_id
            refresh_item(item)

        session.touch()
        logger.info(f"👤 Producer {producer_id} applied to {len(session.items)} item(s)")
        return session

    def apply_batch_commission(self, session: ImportSession, rate: Any) -> ImportSession:
        self._require_step(session, ImportStep.REVIEW)
        try:
            value = float(rate)
        except (TypeError, ValueError):
            raise ImportSessionError("Taxa de comissão inválida")
        if math.isnan(value) or value < 0 or value > 100:
            raise ImportSessionError("Taxa de comissão inválida")

        for item in session.items:
            item.commission_rate = value
            refresh_item(item)

        session.touch()
        logger.info(f"💹 Commission rate {value}% applied to {len(session.items)} item(s)")
        return session

    async def retry_item(self, session: ImportSession, item_id: str, tenant: TenantContext) -> PolicyImportItem:
        """Re-run extraction for one item, keeping its ID and commission rate."""
        self._require_step(session, ImportStep.REVIEW)
        item = self._get_item(session, item_id)

        document = session.find_document(item.source_file)
        if document is None:
            raise ImportSessionNotFoundError(f"Arquivo não encontrado: {item.source_file}")

        item.is_processing = True
        item.process_error = None
        session.touch()

        try:
            policy = await self._analyze_with_retry(session, document)
        except Exception as e:
            logger.error(f"❌ Retry failed for {document.file_name}: {e}")
            item.is_processing = False
            item.process_error = str(e)
            self._set_status(session, document.file_name, FileProcessingStatus.ERROR, str(e))
            return item

        rebuilt = await self._build_item(
            policy,
            document.file_name,
            tenant.user_id,
            file_name=item.file_name,
            item_id=item.id,
            commission_rate=item.commission_rate,
        )
        rebuilt.producer_id = item.producer_id
        refresh_item(rebuilt)

        session.items[session.items.index(item)] = rebuilt
        self._set_status(session, document.file_name, FileProcessingStatus.SUCCESS)
        logger.info(f"✅ {document.file_name} reprocessed")
        return rebuilt

    # =========================================================================
    # COMMIT
    # =========================================================================

    async def commit(self, session: ImportSession, tenant: TenantContext) -> PolicyImportResult:
        self._require_step(session, ImportStep.REVIEW)

        valid_items = [item for item in session.items if item.is_valid]
        if not valid_items:
            raise ImportSessionError("Nenhuma apólice válida para importar")

        # Edits and a second commit see the committing step and are rejected
        session.step = ImportStep.COMMITTING
        session.touch()
        try:
            result = await self.commit_items(valid_items, session.documents, tenant.user_id)
        except Exception:
            session.step = ImportStep.REVIEW
            session.touch()
            raise

        session.result = result
        session.step = ImportStep.COMPLETE
        # Documents are no longer needed once stored
        session.documents = []
        session.touch()
        return result

    async def commit_items(
        self,
        items: List[PolicyImportItem],
        documents: List[SourceDocument],
        user_id: str,
    ) -> PolicyImportResult:
        """
        Persist each item independently.

        Returns:
            Success/error tallies with one detail entry per item
        """
        result = PolicyImportResult()
        documents_by_name = {document.file_name: document for document in documents}

        for index, item in enumerate(items, start=1):
            logger.info(f"💾 [{index}/{len(items)}] Importing {item.numero_apolice} ({item.file_name})")
            detail = ImportItemDetail(item_id=item.id, file_name=item.file_name)
            item.is_processing = True

            try:
                client_id = item.client_id
                if item.client_status == ClientReconcileStatus.NEW or not client_id:
                    cliente = item.extracted.cliente
                    client_id = await self.db.insert_client(ClientRecord(
                        user_id=user_id,
                        name=item.client_name or cliente.nome_completo,
                        cpf_cnpj=item.client_cpf_cnpj or cliente.cpf_cnpj,
                        email=cliente.email or "",
                        phone=cliente.telefone or "",
                        address=cliente.endereco_completo,
                    ))
                    if not client_id:
                        raise RuntimeError("Falha ao criar cliente")
                    detail.client_created = True
                detail.client_id = client_id

                pdf_url = None
                document = documents_by_name.get(item.source_file)
                if document is not None:
                    pdf_url = await self.storage.upload_policy_document(
                        document.content, document.file_name, user_id
                    )

                policy = PolicyRecord(
                    user_id=user_id,
                    client_id=client_id,
                    policy_number=item.numero_apolice,
                    insurance_company=item.seguradora_id,
                    type=item.ramo_id,
                    insured_asset=item.objeto_segurado,
                    premium_value=item.premio_liquido,
                    commission_rate=item.commission_rate,
                    start_date=item.data_inicio,
                    expiration_date=item.data_fim,
                    producer_id=item.producer_id,
                    pdf_url=pdf_url,
                )
                policy_id = await self.db.insert_policy(policy)
                detail.policy_id = policy_id

                try:
                    await self.commissions.generate_commission_transaction(policy_id, policy)
                except Exception as e:
                    # Policy already inserted; a commission failure does not fail the item
                    logger.error(f"❌ Commission generation failed for {item.numero_apolice}: {e}")

                result.success += 1
                item.is_processed = True
                item.process_error = None

            except Exception as e:
                logger.error(f"❌ Error importing policy {item.file_name}: {e}")
                result.errors += 1
                detail.error = str(e)
                item.process_error = str(e)

            finally:
                item.is_processing = False

            result.details.append(detail)

        logger.info(f"🏁 Import finished: {result.success} succeeded, {result.errors} failed")
        return result


# Global instance
policy_import_service = PolicyImportService()
