"""Relational credential backend on the ``auth_state`` table."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from sessiongate.db import Base, make_engine, make_sessionmaker
from sessiongate.exceptions import CredentialStoreError
from sessiongate.models.base import AuthStateEntry

from .base import CredentialStore

logger = logging.getLogger(__name__)


class SQLCredentialStore(CredentialStore):
    """
    Stores each composite key as one row keyed by (session_id, key).

    One pooled engine lives for the lifetime of the store; every operation
    acquires a scoped session from it and releases it on exit. The table is
    created on first use if migrations have not been run.

    Example:
        store = SQLCredentialStore("postgresql+asyncpg://...", session_id="default")
        creds = await store.read_credential_record()
        await store.close()
    """

    backend_name = "sql"

    def __init__(
        self,
        url: str | None = None,
        session_id: str = "default",
        *,
        engine: AsyncEngine | None = None,
    ) -> None:
        super().__init__()
        if engine is None and not url:
            raise ValueError("url or engine is required")
        if not session_id:
            raise ValueError("session_id cannot be empty")
        self._engine = engine or make_engine(url)
        self._owns_engine = engine is None
        self._sessionmaker = make_sessionmaker(self._engine)
        self._session_id = session_id
        self._schema_ready = False
        self._schema_lock = asyncio.Lock()

    @property
    def session_id(self) -> str:
        return self._session_id

    async def _ensure_schema(self) -> None:
        if self._schema_ready:
            return
        async with self._schema_lock:
            if self._schema_ready:
                return
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all, tables=[AuthStateEntry.__table__])
            self._schema_ready = True

    async def _read(self, key: str) -> str | None:
        try:
            await self._ensure_schema()
            async with self._sessionmaker() as session:
                result = await session.execute(
                    select(AuthStateEntry.value).where(
                        AuthStateEntry.session_id == self._session_id,
                        AuthStateEntry.key == key,
                    )
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise CredentialStoreError(str(exc)) from exc

    async def _write(self, key: str, text: str) -> None:
        try:
            await self._ensure_schema()
            async with self._sessionmaker() as session:
                await session.merge(
                    AuthStateEntry(
                        session_id=self._session_id,
                        key=key,
                        value=text,
                        updated_at=datetime.now(timezone.utc),
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise CredentialStoreError(str(exc)) from exc

    async def _delete(self, key: str) -> None:
        try:
            await self._ensure_schema()
            async with self._sessionmaker() as session:
                await session.execute(
                    delete(AuthStateEntry).where(
                        AuthStateEntry.session_id == self._session_id,
                        AuthStateEntry.key == key,
                    )
                )
                await session.commit()
        except SQLAlchemyError as exc:
            raise CredentialStoreError(str(exc)) from exc

    async def _keys(self) -> list[str]:
        try:
            await self._ensure_schema()
            async with self._sessionmaker() as session:
                result = await session.execute(
                    select(AuthStateEntry.key).where(AuthStateEntry.session_id == self._session_id)
                )
                return list(result.scalars())
        except SQLAlchemyError as exc:
            raise CredentialStoreError(str(exc)) from exc

    async def close(self) -> None:
        if self._owns_engine:
            await self._engine.dispose()

    def __repr__(self) -> str:
        return f"<SQLCredentialStore session_id={self._session_id} dialect={self._engine.dialect.name}>"
