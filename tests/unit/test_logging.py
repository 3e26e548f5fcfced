"""
Unit tests for operation logging.

Tests the operation context, the contextual logger adapter and the records
repository operations emit.
"""

import asyncio
import logging

import pytest

from mdb_repository import DocumentRepository, Entity
from mdb_repository.observability import (
    get_logger,
    get_logging_context,
    log_operation,
    operation_context,
)
from mdb_repository.store import InMemoryStoreClient


class Person(Entity):
    name: str


class TestOperationContext:
    """Test the context carried by operations."""

    def test_empty_by_default(self):
        assert get_logging_context() == {}

    def test_set_inside_block_only(self):
        with operation_context(database="people_db", collection="Person") as context:
            assert context == {"database": "people_db", "collection": "Person"}
            assert get_logging_context() == context

        assert get_logging_context() == {}

    def test_nested_blocks_extend(self):
        with operation_context(database="people_db"):
            with operation_context(collection="Person", entity_type=None):
                assert get_logging_context() == {
                    "database": "people_db",
                    "collection": "Person",
                }
            assert get_logging_context() == {"database": "people_db"}

    def test_returned_context_is_a_copy(self):
        with operation_context(database="people_db"):
            get_logging_context()["database"] = "other"
            assert get_logging_context()["database"] == "people_db"

    @pytest.mark.asyncio
    async def test_context_is_per_task(self):
        async def worker(collection):
            with operation_context(collection=collection):
                await asyncio.sleep(0.001)
                return get_logging_context()["collection"]

        assert await asyncio.gather(worker("a"), worker("b")) == ["a", "b"]

    def test_adapter_adds_context(self, caplog):
        logger = get_logger("mdb_repository.tests")

        with caplog.at_level(logging.INFO, logger="mdb_repository.tests"):
            with operation_context(collection="Person"):
                logger.info("hello", extra={"step": 1})

        record = caplog.records[-1]
        assert record.collection == "Person"
        assert record.step == 1


class TestLogOperation:
    """Test operation log records."""

    def test_success(self, caplog):
        logger = logging.getLogger("mdb_repository.tests")
        with caplog.at_level(logging.INFO, logger="mdb_repository.tests"):
            log_operation(logger, "repository.count", duration_ms=1.234, collection="Person")

        record = caplog.records[-1]
        assert record.getMessage() == "repository.count succeeded in 1.23ms"
        assert record.operation == "repository.count"
        assert record.success is True
        assert record.duration_ms == 1.23
        assert record.collection == "Person"

    def test_failure(self, caplog):
        logger = logging.getLogger("mdb_repository.tests")
        with caplog.at_level(logging.WARNING, logger="mdb_repository.tests"):
            log_operation(logger, "repository.remove", level=logging.WARNING, success=False)

        record = caplog.records[-1]
        assert record.getMessage() == "repository.remove failed"
        assert record.levelno == logging.WARNING

    def test_fields_override_context(self, caplog):
        logger = get_logger("mdb_repository.tests")
        with caplog.at_level(logging.INFO, logger="mdb_repository.tests"):
            with operation_context(collection="Person"):
                log_operation(logger, "repository.count", collection="people")

        assert caplog.records[-1].collection == "people"


class TestRepositoryRecords:
    """Test what repository operations log."""

    @pytest.mark.asyncio
    async def test_operation_record(self, store, caplog):
        people = DocumentRepository(store, "people_db", Person)

        with caplog.at_level(logging.DEBUG, logger="mdb_repository"):
            saved = await people.add_or_update(Person(name="Jack"))

        records = [r for r in caplog.records if getattr(r, "operation", None)]
        assert records[-1].operation == "repository.add_or_update"
        assert records[-1].id == saved.id
        assert records[-1].database == "people_db"
        assert records[-1].entity_type == "Person"

    @pytest.mark.asyncio
    async def test_provisioning_records_carry_repository(self, store, caplog):
        people = DocumentRepository(store, "people_db", Person, collection_name="people")

        with caplog.at_level(logging.INFO, logger="mdb_repository.provisioning"):
            await people.count()

        provisioned = [r for r in caplog.records if "Provisioned collection" in r.getMessage()]
        assert provisioned
        assert provisioned[0].collection == "people"
        assert provisioned[0].repository_operation == "count"

    @pytest.mark.asyncio
    async def test_failure_is_logged_at_warning(self, caplog):
        class FailingStore(InMemoryStoreClient):
            async def upsert_document(self, collection, document):
                raise RuntimeError("disk full")

        people = DocumentRepository(FailingStore(), "people_db", Person)

        with caplog.at_level(logging.WARNING, logger="mdb_repository"):
            with pytest.raises(RuntimeError):
                await people.add_or_update(Person(name="Jack"))

        failed = [r for r in caplog.records if getattr(r, "success", True) is False]
        assert failed[-1].operation == "repository.add_or_update"
        assert failed[-1].levelno == logging.WARNING
