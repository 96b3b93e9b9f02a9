"""SQL implementation of the Storage contract (SQLModel over SQLAlchemy)."""

from __future__ import annotations

import logging

from sqlalchemy import event, exists, func, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.pool import StaticPool
from sqlmodel import Field, Session, SQLModel, create_engine, select

from batchtrack.exceptions import PersistenceError
from batchtrack.infra.storage import Storage
from batchtrack.models import (
    BatchRecord,
    BatchStatus,
    MessageRecord,
    MessageStatus,
    MessageUpdate,
)

logger = logging.getLogger(__name__)


class BatchDB(SQLModel, table=True):
    """Provider batch (one row per submission)."""

    __tablename__ = "batch"

    id: str = Field(primary_key=True)
    status: str = Field(index=True)


class MessageDB(SQLModel, table=True):
    """One request/response pair of a batch."""

    __tablename__ = "message"

    id: str = Field(primary_key=True)
    batch_id: str = Field(foreign_key="batch.id", index=True)
    model_name: str = Field(default="", index=True)
    prompt_name: str = Field(default="", index=True)
    status: str = Field(index=True)
    input: str
    output: str | None = None
    error: str | None = None
    input_tokens: int | None = None
    output_tokens: int | None = None
    cache_creation_input_tokens: int | None = None
    cache_read_input_tokens: int | None = None


def _enable_sqlite_foreign_keys(dbapi_connection, connection_record) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def build_engine(url: str) -> Engine:
    """Create an engine; SQLite gets foreign keys enforced."""
    if not url.startswith("sqlite"):
        return create_engine(url, echo=False)

    kwargs: dict = {"connect_args": {"check_same_thread": False}}
    if url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every session sees an empty database.
        kwargs["poolclass"] = StaticPool
    engine = create_engine(url, echo=False, **kwargs)
    event.listen(engine, "connect", _enable_sqlite_foreign_keys)
    return engine


class SQLStorage(Storage):
    """Storage backed by any SQLAlchemy-supported database."""

    def __init__(self, url: str | None = None, *, engine: Engine | None = None) -> None:
        if engine is None:
            if url is None:
                raise ValueError("SQLStorage needs either a url or an engine")
            engine = build_engine(url)
        self.engine = engine

    def init_schema(self) -> None:
        """Create the batch and message tables and their indexes."""
        try:
            SQLModel.metadata.create_all(
                self.engine, tables=[BatchDB.__table__, MessageDB.__table__]
            )
        except SQLAlchemyError as e:
            raise PersistenceError(f"init_schema failed: {e}") from e

    # ── Batch ──

    def create_batch(self, id: str, status: BatchStatus) -> None:
        logger.debug("create_batch id=%s status=%s", id, status.value)
        try:
            with Session(self.engine) as session:
                if session.get(BatchDB, id) is not None:
                    return
                session.add(BatchDB(id=id, status=status.value))
                session.commit()
        except IntegrityError as e:
            # Lost an insert race: fine as long as the row now exists.
            if self.get_batch(id) is None:
                raise PersistenceError(f"create_batch failed: {e}") from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"create_batch failed: {e}") from e

    def update_batch(self, id: str, status: BatchStatus) -> None:
        logger.debug("update_batch id=%s status=%s", id, status.value)
        self._execute_update(
            "update_batch",
            update(BatchDB).where(BatchDB.id == id).values(status=status.value),
        )

    def random_batches(self, limit: int, status: BatchStatus) -> list[str]:
        if limit <= 0:
            return []
        statement = (
            select(BatchDB.id)
            .where(BatchDB.status == status.value)
            .order_by(func.random())
            .limit(limit)
        )
        try:
            with Session(self.engine) as session:
                return list(session.exec(statement).all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"random_batches failed: {e}") from e

    def random_unreconciled_batches(self, limit: int) -> list[str]:
        if limit <= 0:
            return []
        pending = (
            exists()
            .where(MessageDB.batch_id == BatchDB.id)
            .where(MessageDB.status == MessageStatus.CREATED.value)
        )
        statement = (
            select(BatchDB.id)
            .where(BatchDB.status == BatchStatus.ENDED.value)
            .where(pending)
            .order_by(func.random())
            .limit(limit)
        )
        try:
            with Session(self.engine) as session:
                return list(session.exec(statement).all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"random_unreconciled_batches failed: {e}") from e

    def get_batch(self, id: str) -> BatchRecord | None:
        try:
            with Session(self.engine) as session:
                row = session.get(BatchDB, id)
                if row is None:
                    return None
                return BatchRecord(id=row.id, status=BatchStatus(row.status))
        except SQLAlchemyError as e:
            raise PersistenceError(f"get_batch failed: {e}") from e

    # ── Message ──

    def create_message(
        self,
        id: str,
        batch_id: str,
        status: MessageStatus,
        input: str,
        model_name: str = "",
        prompt_name: str = "",
    ) -> None:
        logger.debug("create_message id=%s batch_id=%s", id, batch_id)
        try:
            with Session(self.engine) as session:
                if session.get(MessageDB, id) is not None:
                    return
                session.add(
                    MessageDB(
                        id=id,
                        batch_id=batch_id,
                        model_name=model_name,
                        prompt_name=prompt_name,
                        status=status.value,
                        input=input,
                    )
                )
                session.commit()
        except IntegrityError as e:
            # Either a concurrent insert (row exists) or a missing batch row.
            if self.get_message(id) is None:
                raise PersistenceError(f"create_message failed: {e}") from e
        except SQLAlchemyError as e:
            raise PersistenceError(f"create_message failed: {e}") from e

    def update_message(self, data: MessageUpdate) -> None:
        values = {"status": data.status.value, **data.merge_fields()}
        logger.debug("update_message id=%s %s", data.id, values)
        self._execute_update(
            "update_message",
            update(MessageDB).where(MessageDB.id == data.id).values(**values),
        )

    def get_message(self, id: str) -> MessageRecord | None:
        try:
            with Session(self.engine) as session:
                row = session.get(MessageDB, id)
                if row is None:
                    return None
                return MessageRecord(
                    id=row.id,
                    batch_id=row.batch_id,
                    status=MessageStatus(row.status),
                    input=row.input,
                    model_name=row.model_name,
                    prompt_name=row.prompt_name,
                    output=row.output,
                    error=row.error,
                    input_tokens=row.input_tokens,
                    output_tokens=row.output_tokens,
                    cache_creation_input_tokens=row.cache_creation_input_tokens,
                    cache_read_input_tokens=row.cache_read_input_tokens,
                )
        except SQLAlchemyError as e:
            raise PersistenceError(f"get_message failed: {e}") from e

    def message_ids(self, batch_id: str, status: MessageStatus | None = None) -> list[str]:
        statement = select(MessageDB.id).where(MessageDB.batch_id == batch_id)
        if status is not None:
            statement = statement.where(MessageDB.status == status.value)
        try:
            with Session(self.engine) as session:
                return list(session.exec(statement.order_by(MessageDB.id)).all())
        except SQLAlchemyError as e:
            raise PersistenceError(f"message_ids failed: {e}") from e

    def close(self) -> None:
        self.engine.dispose()

    def _execute_update(self, op: str, statement) -> None:
        try:
            with self.engine.begin() as conn:
                conn.execute(statement)
        except SQLAlchemyError as e:
            raise PersistenceError(f"{op} failed: {e}") from e
