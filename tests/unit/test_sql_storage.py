"""SQLStorage tests against a real SQLite database."""

from unittest.mock import patch

import pytest
from sqlalchemy import inspect
from sqlalchemy.exc import OperationalError

from batchtrack.exceptions import PersistenceError
from batchtrack.infra.sql_storage import SQLStorage
from batchtrack.models import BatchStatus, MessageStatus, MessageUpdate


def _seed(storage, batch_id="b1", message_id="m1"):
    storage.create_batch(batch_id, BatchStatus.IN_PROGRESS)
    storage.create_message(message_id, batch_id, MessageStatus.CREATED, "hi")


class TestSchema:
    def test_tables_and_indexes(self, storage):
        insp = inspect(storage.engine)
        assert {"batch", "message"} <= set(insp.get_table_names())

        message_indexed = {tuple(ix["column_names"]) for ix in insp.get_indexes("message")}
        assert ("batch_id",) in message_indexed
        assert ("status",) in message_indexed
        batch_indexed = {tuple(ix["column_names"]) for ix in insp.get_indexes("batch")}
        assert ("status",) in batch_indexed

    def test_init_schema_is_idempotent(self, storage):
        storage.init_schema()
        _seed(storage)
        storage.init_schema()
        assert storage.get_message("m1") is not None

    def test_requires_url_or_engine(self):
        with pytest.raises(ValueError):
            SQLStorage()


class TestBatch:
    def test_create_and_update(self, storage):
        storage.create_batch("b1", BatchStatus.IN_PROGRESS)
        assert storage.get_batch("b1").status is BatchStatus.IN_PROGRESS

        storage.update_batch("b1", BatchStatus.ENDED)
        assert storage.get_batch("b1").status is BatchStatus.ENDED

    def test_create_twice_does_not_overwrite(self, storage):
        storage.create_batch("b1", BatchStatus.IN_PROGRESS)
        storage.update_batch("b1", BatchStatus.CANCELING)
        storage.create_batch("b1", BatchStatus.IN_PROGRESS)
        assert storage.get_batch("b1").status is BatchStatus.CANCELING

    def test_update_unknown_is_noop(self, storage):
        storage.update_batch("missing", BatchStatus.ENDED)
        assert storage.get_batch("missing") is None

    def test_random_batches_filters_by_status(self, storage):
        for i in range(5):
            storage.create_batch(f"run-{i}", BatchStatus.IN_PROGRESS)
        storage.create_batch("done", BatchStatus.ENDED)
        storage.create_batch("stopping", BatchStatus.CANCELING)

        ids = storage.random_batches(3, BatchStatus.IN_PROGRESS)
        assert len(ids) == 3
        assert len(set(ids)) == 3
        for batch_id in ids:
            assert storage.get_batch(batch_id).status is BatchStatus.IN_PROGRESS

    def test_random_batches_limit_larger_than_rows(self, storage):
        storage.create_batch("b1", BatchStatus.IN_PROGRESS)
        storage.create_batch("b2", BatchStatus.ENDED)
        assert storage.random_batches(10, BatchStatus.IN_PROGRESS) == ["b1"]
        assert storage.random_batches(10, BatchStatus.CANCELING) == []

    def test_random_batches_non_positive_limit(self, storage):
        storage.create_batch("b1", BatchStatus.IN_PROGRESS)
        assert storage.random_batches(0, BatchStatus.IN_PROGRESS) == []

    def test_random_unreconciled_batches(self, storage):
        storage.create_batch("interrupted", BatchStatus.ENDED)
        storage.create_message("m1", "interrupted", MessageStatus.CREATED, "a")
        storage.create_message("m2", "interrupted", MessageStatus.CREATED, "b")
        storage.update_message(MessageUpdate(id="m1", status=MessageStatus.SUCCEEDED))
        storage.create_batch("done", BatchStatus.ENDED)
        storage.create_message("m3", "done", MessageStatus.CREATED, "c")
        storage.update_message(MessageUpdate(id="m3", status=MessageStatus.ERRORED))
        storage.create_batch("running", BatchStatus.IN_PROGRESS)
        storage.create_message("m4", "running", MessageStatus.CREATED, "d")

        assert storage.random_unreconciled_batches(10) == ["interrupted"]
        assert storage.random_unreconciled_batches(0) == []


class TestMessage:
    def test_create(self, storage):
        storage.create_batch("b1", BatchStatus.IN_PROGRESS)
        storage.create_message(
            "m1", "b1", MessageStatus.CREATED, "hi", model_name="claude", prompt_name="sys"
        )
        row = storage.get_message("m1")
        assert row.batch_id == "b1"
        assert row.status is MessageStatus.CREATED
        assert row.input == "hi"
        assert row.model_name == "claude"
        assert row.prompt_name == "sys"
        assert row.output is None
        assert row.error is None
        assert row.input_tokens is None

    def test_create_twice_keeps_first_row(self, storage):
        _seed(storage)
        storage.create_message("m1", "b1", MessageStatus.CREATED, "other input")
        assert storage.get_message("m1").input == "hi"

    def test_create_without_batch_fails(self, storage):
        with pytest.raises(PersistenceError, match="create_message"):
            storage.create_message("orphan", "no-such-batch", MessageStatus.CREATED, "hi")
        assert storage.get_message("orphan") is None

    def test_update_merges_optional_fields(self, storage):
        _seed(storage)
        storage.update_message(
            MessageUpdate(
                id="m1",
                status=MessageStatus.SUCCEEDED,
                output="hello",
                input_tokens=5,
                output_tokens=3,
                cache_read_input_tokens=1,
            )
        )
        storage.update_message(
            MessageUpdate(id="m1", status=MessageStatus.SUCCEEDED, input_tokens=7)
        )

        row = storage.get_message("m1")
        assert row.status is MessageStatus.SUCCEEDED
        assert row.output == "hello"
        assert row.error is None
        assert row.input_tokens == 7
        assert row.output_tokens == 3
        assert row.cache_read_input_tokens == 1
        assert row.cache_creation_input_tokens is None

    def test_update_always_writes_status(self, storage):
        _seed(storage)
        storage.update_message(
            MessageUpdate(id="m1", status=MessageStatus.ERRORED, error="overloaded")
        )
        row = storage.get_message("m1")
        assert row.status is MessageStatus.ERRORED
        assert row.error == "overloaded"

    def test_update_unknown_is_noop(self, storage):
        storage.update_message(MessageUpdate(id="ghost", status=MessageStatus.SUCCEEDED))
        assert storage.get_message("ghost") is None

    def test_message_ids(self, storage):
        storage.create_batch("b1", BatchStatus.ENDED)
        storage.create_batch("b2", BatchStatus.ENDED)
        for mid in ("m1", "m2", "m3"):
            storage.create_message(mid, "b1", MessageStatus.CREATED, mid)
        storage.create_message("other", "b2", MessageStatus.CREATED, "x")
        storage.update_message(MessageUpdate(id="m2", status=MessageStatus.SUCCEEDED))

        assert storage.message_ids("b1") == ["m1", "m2", "m3"]
        assert storage.message_ids("b1", MessageStatus.CREATED) == ["m1", "m3"]
        assert storage.message_ids("b1", MessageStatus.SUCCEEDED) == ["m2"]


class TestFileDatabase:
    def test_rows_survive_reopen(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'batches.db'}"
        first = SQLStorage(url)
        first.init_schema()
        _seed(first)
        first.close()

        second = SQLStorage(url)
        row = second.get_message("m1")
        second.close()
        assert row is not None
        assert row.input == "hi"


class TestErrors:
    def test_missing_schema_raises_persistence_error(self):
        storage = SQLStorage("sqlite://")
        with pytest.raises(PersistenceError, match="get_batch"):
            storage.get_batch("b1")
        with pytest.raises(PersistenceError, match="update_batch"):
            storage.update_batch("b1", BatchStatus.ENDED)
        with pytest.raises(PersistenceError, match="random_batches"):
            storage.random_batches(1, BatchStatus.IN_PROGRESS)

    def test_connection_failure_is_wrapped(self, storage):
        failure = OperationalError("UPDATE", {}, Exception("down"))
        with patch.object(type(storage.engine), "begin", side_effect=failure):
            with pytest.raises(PersistenceError, match="update_message"):
                storage.update_message(MessageUpdate(id="m1", status=MessageStatus.ERRORED))
