"""
Tenant schema scanning.

One listing per category per pass: the table names in the category database's
``public`` schema. The listing doubles as the existence probe for slot
resolution, so a pass never issues per-table existence queries.
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy import create_engine, inspect
from sqlalchemy.engine import Engine
from sqlalchemy.engine.url import make_url
from sqlalchemy.exc import SQLAlchemyError

from dashspine.catalog.categories import Category
from dashspine.core.errors import ConnectionFailure
from dashspine.core.logging import get_logger
from dashspine.tenants.context import TenantContext

logger = get_logger(__name__)

EngineFactory = Callable[[str], Engine]


class SchemaScanner:
    def __init__(
        self,
        *,
        connect_timeout: int = 5,
        ssl: bool = False,
        engine_factory: EngineFactory | None = None,
        schema: str = "public",
    ) -> None:
        self._connect_timeout = connect_timeout
        self._ssl = ssl
        self._engine_factory = engine_factory or self._default_engine
        self._schema = schema

    def _default_engine(self, url: str) -> Engine:
        connect_args: dict[str, object] = {}
        if make_url(url).get_backend_name() == "postgresql":
            connect_args = {
                "connect_timeout": self._connect_timeout,
                "sslmode": "require" if self._ssl else "disable",
            }
        return create_engine(url, connect_args=connect_args, pool_pre_ping=True)

    def list_tables(self, url: str) -> list[str]:
        """Table names in the schema; raises ``ConnectionFailure`` when unreachable."""
        try:
            engine = self._engine_factory(url)
        except SQLAlchemyError as e:
            raise ConnectionFailure(f"Cannot create engine: {e}", cause=e) from e
        schema = None if engine.dialect.name == "sqlite" else self._schema
        try:
            return sorted(inspect(engine).get_table_names(schema=schema))
        except SQLAlchemyError as e:
            raise ConnectionFailure(f"Cannot list tables: {e}", cause=e) from e
        finally:
            engine.dispose()

    def scan(self, tenant: TenantContext, category: Category) -> list[str]:
        url = tenant.schema_url(category)
        try:
            tables = self.list_tables(url)
        except ConnectionFailure as e:
            e.with_context(tenant_id=tenant.tenant_id, category=category.value)
            raise
        logger.debug("schema_scanned", tenant=tenant.tenant_id, category=category.value, tables=len(tables))
        return tables


__all__ = ["SchemaScanner"]
