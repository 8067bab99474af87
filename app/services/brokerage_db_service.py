"""
Brokerage MongoDB Service
=========================
Tenant-scoped data access for the brokerage collections used by the policy
import workflow and the recurring-appointment functions.

Every read and write on tenant data is filtered by ``user_id``.
"""

import re
import logging
from datetime import datetime
from typing import List, Optional, Dict, Any

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import ConnectionFailure

from app.core.config import settings
from app.models.document_model import (
    ClientRecord,
    PolicyRecord,
    TransactionRecord,
    AppointmentRecord,
)

logger = logging.getLogger(__name__)


def _serialize(document: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Convert a MongoDB document into a plain dict with a string ``id``."""
    if document is None:
        return None
    document = dict(document)
    document["id"] = str(document.pop("_id"))
    return document


def _tax_id_pattern(digits: str) -> str:
    # Stored values may keep their punctuation (123.456.789-00)
    return r"\D*".join(re.escape(d) for d in digits)


class BrokerageDBService:
    """
    MongoDB service for clients, reference tables, policies, transactions
    and appointments.
    """

    def __init__(self):
        self.client = None
        self.database = None

        # Collections
        self.clients_collection = None
        self.companies_collection = None
        self.ramos_collection = None
        self.producers_collection = None
        self.policies_collection = None
        self.transactions_collection = None
        self.transaction_types_collection = None
        self.appointments_collection = None

    async def connect(self):
        """Connect to MongoDB and initialize collections"""
        try:
            logger.info(f"🔌 Connecting to MongoDB: {settings.MONGODB_URL}")

            self.client = AsyncIOMotorClient(settings.MONGODB_URL)
            self.database = self.client[settings.MONGODB_DATABASE]

            self.clients_collection = self.database.clientes
            self.companies_collection = self.database.companies
            self.ramos_collection = self.database.ramos
            self.producers_collection = self.database.producers
            self.policies_collection = self.database.apolices
            self.transactions_collection = self.database.transactions
            self.transaction_types_collection = self.database.transaction_types
            self.appointments_collection = self.database.appointments

            # Test connection
            await self.client.admin.command("ping")
            logger.info("✅ Successfully connected to MongoDB")

            await self._create_indexes()

        except ConnectionFailure as e:
            logger.error(f"❌ Failed to connect to MongoDB: {e}")
            raise
        except Exception as e:
            logger.error(f"❌ Unexpected error connecting to MongoDB: {e}")
            raise

    async def _create_indexes(self):
        """Create database indexes for the tenant filters"""
        try:
            await self.clients_collection.create_index([("user_id", 1), ("cpf_cnpj", 1)])
            await self.clients_collection.create_index([("user_id", 1), ("email", 1)])
            await self.companies_collection.create_index("user_id")
            await self.ramos_collection.create_index("user_id")
            await self.producers_collection.create_index("user_id")
            await self.policies_collection.create_index([("user_id", 1), ("policy_number", 1)])
            await self.transactions_collection.create_index("policy_id")
            await self.transaction_types_collection.create_index([("user_id", 1), ("name", 1)])
            await self.appointments_collection.create_index("parent_appointment_id")

            logger.info("✅ Database indexes created successfully")

        except Exception as e:
            logger.error(f"⚠️  Error creating indexes: {e}")

    async def disconnect(self):
        """Disconnect from MongoDB"""
        if self.client:
            self.client.close()
            logger.info("🔌 Disconnected from MongoDB")

    def _ensure_connected(self):
        if self.database is None:
            raise ConnectionError("Brokerage DB Service not connected to MongoDB")

    # =========================================================================
    # CLIENTS
    # =========================================================================

    async def find_client_by_cpf_cnpj(self, digits: str, user_id: str) -> Optional[Dict[str, Any]]:
        """
        First client of the tenant whose stored CPF/CNPJ contains ``digits``.

        Args:
            digits: Tax ID already normalized to digits only
            user_id: Tenant ID
        """
        self._ensure_connected()
        document = await self.clients_collection.find_one(
            {
                "user_id": user_id,
                "cpf_cnpj": {"$regex": _tax_id_pattern(digits), "$options": "i"},
            },
            {"name": 1, "cpf_cnpj": 1, "email": 1},
        )
        return _serialize(document)

    async def find_client_by_email(self, email: str, user_id: str) -> Optional[Dict[str, Any]]:
        """First client of the tenant whose email equals ``email`` ignoring case."""
        self._ensure_connected()
        document = await self.clients_collection.find_one(
            {
                "user_id": user_id,
                "email": {"$regex": f"^{re.escape(email.strip())}$", "$options": "i"},
            },
            {"name": 1, "cpf_cnpj": 1, "email": 1},
        )
        return _serialize(document)

    async def insert_client(self, record: ClientRecord) -> str:
        self._ensure_connected()
        result = await self.clients_collection.insert_one(record.model_dump())
        logger.info(f"✅ Created client: {record.name} → {result.inserted_id}")
        return str(result.inserted_id)

    # =========================================================================
    # REFERENCE TABLES
    # =========================================================================

    async def _list_reference(self, collection, user_id: str, field: str) -> List[Dict[str, Any]]:
        self._ensure_connected()
        cursor = collection.find({"user_id": user_id}, {field: 1})
        return [_serialize(doc) async for doc in cursor]

    async def list_companies(self, user_id: str) -> List[Dict[str, Any]]:
        """Insurers of the tenant, in natural (insertion) order."""
        return await self._list_reference(self.companies_collection, user_id, "name")

    async def list_ramos(self, user_id: str) -> List[Dict[str, Any]]:
        """Insurance lines of the tenant, in natural (insertion) order."""
        return await self._list_reference(self.ramos_collection, user_id, "nome")

    async def list_producers(self, user_id: str) -> List[Dict[str, Any]]:
        return await self._list_reference(self.producers_collection, user_id, "name")

    # =========================================================================
    # POLICIES & TRANSACTIONS
    # =========================================================================

    async def insert_policy(self, record: PolicyRecord) -> str:
        self._ensure_connected()
        result = await self.policies_collection.insert_one(record.model_dump())
        logger.info(f"✅ Created policy: {record.policy_number} → {result.inserted_id}")
        return str(result.inserted_id)

    async def find_commission_transaction(self, policy_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        self._ensure_connected()
        document = await self.transactions_collection.find_one(
            {"user_id": user_id, "policy_id": policy_id, "nature": {"$in": ["RECEITA", "GANHO"]}},
            {"_id": 1},
        )
        return _serialize(document)

    async def find_transaction_type(self, user_id: str, name: str) -> Optional[Dict[str, Any]]:
        """Oldest transaction type of the tenant with this name."""
        self._ensure_connected()
        cursor = (
            self.transaction_types_collection.find({"user_id": user_id, "name": name})
            .sort("created_at", 1)
            .limit(1)
        )
        documents = [doc async for doc in cursor]
        return _serialize(documents[0]) if documents else None

    async def insert_transaction_type(self, user_id: str, name: str, nature: str) -> str:
        self._ensure_connected()
        result = await self.transaction_types_collection.insert_one(
            {"user_id": user_id, "name": name, "nature": nature, "created_at": datetime.utcnow()}
        )
        return str(result.inserted_id)

    async def insert_transaction(self, record: TransactionRecord) -> Dict[str, Any]:
        self._ensure_connected()
        document = record.model_dump()
        result = await self.transactions_collection.insert_one(dict(document))
        document["id"] = str(result.inserted_id)
        return document

    # =========================================================================
    # APPOINTMENTS
    # =========================================================================

    async def get_appointment(self, appointment_id: str, user_id: str) -> Optional[Dict[str, Any]]:
        self._ensure_connected()
        if not ObjectId.is_valid(appointment_id):
            return None
        document = await self.appointments_collection.find_one(
            {"_id": ObjectId(appointment_id), "user_id": user_id}
        )
        return _serialize(document)

    async def insert_appointment(self, record: AppointmentRecord) -> str:
        self._ensure_connected()
        result = await self.appointments_collection.insert_one(record.model_dump())
        return str(result.inserted_id)


# Global instance
brokerage_db_service = BrokerageDBService()
