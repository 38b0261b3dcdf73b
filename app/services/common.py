"""Common helper functions for service layer.

This module provides reusable utilities for:
- Query ordering and pagination
- Enum validation
- Insert-or-ignore statements across dialects
- Commit handling that maps database errors to StoreFailure
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from fastapi import HTTPException
from sqlalchemy import insert
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from app.logging import get_logger
from app.services.exceptions import StoreFailure

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def apply_ordering(stmt, order_by: str, order_dir: str, allowed_columns: dict):
    """Apply ordering to a select with validation.

    Args:
        stmt: SQLAlchemy select statement
        order_by: Column name to order by
        order_dir: Direction ('asc' or 'desc')
        allowed_columns: Dict mapping column names to SQLAlchemy columns

    Returns:
        Statement with ordering applied

    Raises:
        HTTPException: 400 if order_by is not in allowed_columns
    """
    if order_by not in allowed_columns:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid order_by. Allowed: {', '.join(sorted(allowed_columns))}",
        )
    column = allowed_columns[order_by]
    if order_dir == "desc":
        return stmt.order_by(column.desc())
    return stmt.order_by(column.asc())


def apply_pagination(stmt, limit: int, offset: int):
    """Apply pagination to a select."""
    return stmt.limit(limit).offset(offset)


def validate_enum(value, enum_cls, label: str):
    """Validate and convert a value to an enum member.

    Args:
        value: Value to validate (can be None)
        enum_cls: Enum class to validate against
        label: Human-readable label for error messages

    Returns:
        Enum member or None if value is None

    Raises:
        HTTPException: 400 if value is not a valid enum member
    """
    if value is None:
        return None
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, Enum):
        value = value.value
    try:
        return enum_cls(value)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=f"Invalid {label}") from exc


async def insert_or_ignore(
    db: AsyncSession,
    model,
    values: dict,
    conflict_columns: list[str],
    returning,
    operation: str,
):
    """Insert one row unless it violates the given unique key.

    The check and the write are a single statement, so concurrent callers
    racing on the same key cannot both insert.

    Args:
        db: Database session (the caller owns the transaction)
        model: Mapped class to insert into
        values: Column values for the new row
        conflict_columns: Columns of the unique key that signals a duplicate
        returning: Column whose value identifies the inserted row
        operation: Label used in error logs

    Returns:
        The ``returning`` column value when a row was written, None when the
        key already existed
    """
    dialect = db.get_bind().dialect.name
    if dialect in ("postgresql", "sqlite"):
        insert_fn = postgresql.insert if dialect == "postgresql" else sqlite.insert
        stmt = (
            insert_fn(model)
            .values(**values)
            .on_conflict_do_nothing(index_elements=conflict_columns)
            .returning(returning)
        )
        result = await execute(db, stmt, operation)
        return result.scalar_one_or_none()
    if dialect in ("mysql", "mariadb"):
        stmt = mysql.insert(model).values(**values).prefix_with("IGNORE")
    else:
        stmt = insert(model).values(**values)
    result = await execute(db, stmt, operation)
    if result.rowcount != 1:
        return None
    return values.get(returning.key, result.lastrowid)


async def commit(db: AsyncSession, operation: str) -> None:
    """Commit the session, rolling back and raising StoreFailure on database errors."""
    try:
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("store_commit_failed operation=%s error=%s", operation, exc)
        raise StoreFailure(f"Could not save {operation}") from exc


async def execute(db: AsyncSession, stmt, operation: str):
    """Execute a statement, rolling back and raising StoreFailure on database errors."""
    try:
        return await db.execute(stmt)
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("store_execute_failed operation=%s error=%s", operation, exc)
        raise StoreFailure(f"Could not run {operation}") from exc
