"""Persistence gateway for daily logs.

Every operation is scoped to one owner. On PostgreSQL the owner is also
published to the row-level security policy for the current transaction,
so the database refuses rows the caller does not own even if a query
forgot its filter.
"""
import logging
import uuid
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import text, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from db import is_postgres
from errors import RecordNotFound, StoreError
from models import DailyLog

logger = logging.getLogger(__name__)

CONFLICT_KEY = ["user_id", "log_date"]


def _scope_to_owner(session: Session, owner: str):
    if is_postgres(session.get_bind()):
        session.execute(
            text("SELECT set_config('app.current_user', :owner, true)"),
            {"owner": owner},
        )


def _insert_for(session: Session):
    return postgresql.insert if is_postgres(session.get_bind()) else sqlite.insert


def _fetch(session: Session, owner: str, **criteria) -> DailyLog | None:
    stmt = select(DailyLog).where(DailyLog.user_id == owner)
    for column, value in criteria.items():
        stmt = stmt.where(getattr(DailyLog, column) == value)
    return session.exec(stmt.execution_options(populate_existing=True)).first()


def upsert(
    session: Session,
    owner: str,
    log_date: date,
    transcript: str | None,
    extracted: dict[str, Any] | None,
) -> DailyLog:
    """Insert the day's log, or replace transcript and extracted in place.

    The conflict target is (user_id, log_date), so an existing row keeps
    its id and created_at.
    """
    logger.info(f"Upserting daily log for user {owner} on {log_date}")
    try:
        _scope_to_owner(session, owner)
        insert = _insert_for(session)
        stmt = insert(DailyLog).values(
            id=str(uuid.uuid4()),
            user_id=owner,
            log_date=log_date,
            transcript=transcript,
            extracted=extracted,
            created_at=datetime.now(UTC),
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=CONFLICT_KEY,
            set_={
                "transcript": stmt.excluded.transcript,
                "extracted": stmt.excluded.extracted,
            },
        )
        session.execute(stmt)

        # Read back inside the same transaction, detached so commit can't expire it
        record = _fetch(session, owner, log_date=log_date)
        session.expunge(record)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error upserting daily log: {str(e)}")
        raise StoreError(str(e)) from e

    logger.info(f"Upserted daily log {record.id} for user {owner}")
    return record


def list_by_date_range(
    session: Session,
    owner: str,
    date_from: date,
    date_to: date,
    descending: bool = False,
) -> list[DailyLog]:
    """Return the owner's logs with date_from <= log_date <= date_to."""
    logger.info(f"Listing logs for user {owner} from {date_from} to {date_to}")
    try:
        _scope_to_owner(session, owner)
        order = DailyLog.log_date.desc() if descending else DailyLog.log_date.asc()
        stmt = (
            select(DailyLog)
            .where(DailyLog.user_id == owner)
            .where(DailyLog.log_date >= date_from)
            .where(DailyLog.log_date <= date_to)
            .order_by(order)
            .execution_options(populate_existing=True)
        )
        return list(session.exec(stmt).all())
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error listing daily logs: {str(e)}")
        raise StoreError(str(e)) from e


def get_by_id(session: Session, owner: str, log_id: str) -> DailyLog:
    try:
        _scope_to_owner(session, owner)
        record = _fetch(session, owner, id=log_id)
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error loading daily log: {str(e)}")
        raise StoreError(str(e)) from e

    if record is None:
        raise RecordNotFound("Log not found")
    return record


def update_by_id(session: Session, owner: str, log_id: str, extracted: dict[str, Any]) -> DailyLog:
    """Replace the extracted payload of one log.

    Raises RecordNotFound when no log with that id belongs to the owner;
    nothing else is written in that case.
    """
    logger.info(f"Update request for log {log_id} by user {owner}")
    try:
        _scope_to_owner(session, owner)
        result = session.execute(
            update(DailyLog)
            .where(DailyLog.id == log_id)
            .where(DailyLog.user_id == owner)
            .values(extracted=extracted)
        )
        if result.rowcount == 0:
            session.rollback()
            raise RecordNotFound("Log not found")

        record = _fetch(session, owner, id=log_id)
        session.expunge(record)
        session.commit()
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Error updating daily log: {str(e)}")
        raise StoreError(str(e)) from e

    logger.info(f"Successfully updated log {log_id}")
    return record
