"""Document collections backed by SQLAlchemy async sessions."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from sqlalchemy import ColumnElement, delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from fastapi_parcelpay.contrib.sqlalchemy.models import (
    DocumentMixin,
    ParcelModel,
    PaymentModel,
    TrackingEventModel,
    UserModel,
)
from fastapi_parcelpay.exceptions import DuplicateDocumentError, StoreError
from fastapi_parcelpay.protocols import Filter, Sort
from fastapi_parcelpay.types import Document, UpdateResult, new_document_id


class SQLAlchemyCollection:
    """One document collection stored in one table."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        model: type[DocumentMixin],
    ) -> None:
        self.session_factory = session_factory
        self.model = model

    def _column(self, key: str):
        try:
            return self.model.column_for(key)
        except KeyError as e:
            raise StoreError(
                f"{self.model.__tablename__} has no indexed field {key!r}"
            ) from e

    def _conditions(self, filter: Filter | None) -> list[ColumnElement[bool]]:
        return [
            self._column(key) == value for key, value in (filter or {}).items()
        ]

    def _first_match(self, conditions):
        # Uncorrelated: picks one row of the table, not the outer row.
        return (
            select(self.model.id)
            .where(*conditions)
            .limit(1)
            .correlate(None)
            .scalar_subquery()
        )

    def _patch_values(self, patch: Mapping[str, Any]) -> dict[str, Any]:
        if "_id" in patch:
            raise StoreError("Document id cannot be patched")
        return {self._column(key).key: value for key, value in patch.items()}

    async def find(
        self, filter: Filter | None = None, sort: Sort | None = None
    ) -> list[Document]:
        stmt = select(self.model).where(*self._conditions(filter))
        for key, direction in sort or ():
            column = self._column(key)
            stmt = stmt.order_by(column.desc() if direction < 0 else column)
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                return [row.to_document() for row in result.scalars().all()]
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e

    async def find_one(self, filter: Filter) -> Document | None:
        stmt = select(self.model).where(*self._conditions(filter)).limit(1)
        try:
            async with self.session_factory() as session:
                result = await session.execute(stmt)
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        return row.to_document() if row is not None else None

    async def insert_one(self, document: Mapping[str, Any]) -> str:
        values = dict(document)
        values.setdefault("_id", new_document_id())
        try:
            row = self.model(**self.model.values_from_document(values))
        except KeyError as e:
            raise StoreError(
                f"{self.model.__tablename__} does not accept fields {e}"
            ) from e
        try:
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
        except IntegrityError as e:
            if "unique" in str(e.orig).lower():
                raise DuplicateDocumentError(str(e.orig)) from e
            raise StoreError(str(e.orig)) from e
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        return values["_id"]

    async def update_one(
        self, filter: Filter, patch: Mapping[str, Any]
    ) -> UpdateResult:
        """Patch the first document matching ``filter``.

        The filter is evaluated inside the UPDATE itself, so a concurrent
        writer that changed a filtered field leaves nothing to modify.
        """
        conditions = self._conditions(filter)
        values = self._patch_values(patch)
        if not values:
            raise StoreError("Empty patch")
        first_match = self._first_match(conditions)
        differs = or_(
            *(
                getattr(self.model, attr).is_distinct_from(value)
                for attr, value in values.items()
            )
        )
        stmt = (
            update(self.model)
            .where(self.model.id == first_match, *conditions, differs)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self.session_factory() as session, session.begin():
                result = await session.execute(stmt)
                if result.rowcount == 1:
                    return UpdateResult(matched_count=1, modified_count=1)
                matched = await session.scalar(
                    select(func.count())
                    .select_from(
                        select(self.model.id)
                        .where(*conditions)
                        .limit(1)
                        .subquery()
                    )
                )
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        return UpdateResult(matched_count=matched or 0, modified_count=0)

    async def delete_one(self, filter: Filter) -> int:
        conditions = self._conditions(filter)
        first_match = self._first_match(conditions)
        stmt = (
            delete(self.model)
            .where(self.model.id == first_match)
            .execution_options(synchronize_session=False)
        )
        try:
            async with self.session_factory() as session, session.begin():
                result = await session.execute(stmt)
        except SQLAlchemyError as e:
            raise StoreError(str(e)) from e
        return result.rowcount


class SQLAlchemyEntityStore:
    """Entity store holding the four collections on one session factory."""

    def __init__(
        self, session_factory: async_sessionmaker[AsyncSession]
    ) -> None:
        self.session_factory = session_factory
        self.users = SQLAlchemyCollection(session_factory, UserModel)
        self.parcels = SQLAlchemyCollection(session_factory, ParcelModel)
        self.payments = SQLAlchemyCollection(session_factory, PaymentModel)
        self.tracking_events = SQLAlchemyCollection(
            session_factory, TrackingEventModel
        )
