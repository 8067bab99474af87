"""Tests for the client lookup queries sent to MongoDB."""

import re
from unittest.mock import AsyncMock, Mock

import pytest
from bson import ObjectId

from app.services.brokerage_db_service import BrokerageDBService, _tax_id_pattern
from tests.factories import USER_ID


def mongo_match(condition: dict, value: str) -> bool:
    flags = re.IGNORECASE if "i" in condition.get("$options", "") else 0
    return re.search(condition["$regex"], value, flags) is not None


@pytest.fixture
def db_service() -> BrokerageDBService:
    service = BrokerageDBService()
    service.database = Mock()
    service.clients_collection = Mock()
    return service


class TestTaxIdPattern:

    @pytest.mark.parametrize("stored", ["12345678900", "123.456.789-00", "CPF: 123 456 789/00"])
    def test_matches_punctuated_stored_values(self, stored: str) -> None:
        assert re.search(_tax_id_pattern("12345678900"), stored)

    def test_contains_match_on_longer_value(self) -> None:
        assert re.search(_tax_id_pattern("45678900"), "123.456.789-00")

    def test_different_digits_do_not_match(self) -> None:
        assert not re.search(_tax_id_pattern("12345678901"), "123.456.789-00")
        assert not re.search(_tax_id_pattern("12345678900"), "123.456.788-00")


class TestClientLookups:

    @pytest.mark.asyncio
    async def test_tax_id_filter(self, db_service: BrokerageDBService) -> None:
        client_id = ObjectId()
        db_service.clients_collection.find_one = AsyncMock(
            return_value={"_id": client_id, "name": "Maria", "cpf_cnpj": "123.456.789-00", "email": ""}
        )

        client = await db_service.find_client_by_cpf_cnpj("12345678900", USER_ID)

        assert client["id"] == str(client_id)
        query = db_service.clients_collection.find_one.call_args.args[0]
        assert query["user_id"] == USER_ID
        assert mongo_match(query["cpf_cnpj"], "123.456.789-00")
        assert not mongo_match(query["cpf_cnpj"], "987.654.321-00")

    @pytest.mark.asyncio
    async def test_email_filter_is_anchored_and_case_insensitive(self, db_service: BrokerageDBService) -> None:
        db_service.clients_collection.find_one = AsyncMock(return_value=None)

        assert await db_service.find_client_by_email("  Maria@Example.com ", USER_ID) is None

        query = db_service.clients_collection.find_one.call_args.args[0]
        assert query["user_id"] == USER_ID
        assert mongo_match(query["email"], "maria@example.com")
        assert not mongo_match(query["email"], "ana.maria@example.com")
        assert not mongo_match(query["email"], "maria@example.com.br")

    @pytest.mark.asyncio
    async def test_email_metacharacters_are_escaped(self, db_service: BrokerageDBService) -> None:
        db_service.clients_collection.find_one = AsyncMock(return_value=None)

        await db_service.find_client_by_email("a.b+c@x.com", USER_ID)

        condition = db_service.clients_collection.find_one.call_args.args[0]["email"]
        assert mongo_match(condition, "a.b+c@x.com")
        assert not mongo_match(condition, "aXb+c@x.com")
        assert not mongo_match(condition, "a.bbc@x.com")

    @pytest.mark.asyncio
    async def test_lookup_requires_connection(self) -> None:
        with pytest.raises(ConnectionError):
            await BrokerageDBService().find_client_by_email("maria@example.com", USER_ID)
