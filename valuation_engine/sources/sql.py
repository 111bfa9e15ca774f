"""
SQL Data Sources

SQLAlchemy implementations of the engine's collaborators. Facts are read
from materialized tables; pricing, ROI and summary figures come from stored
functions. Database column names are aliased to the engine's field names
here, so nothing downstream knows the database naming.

Every database failure surfaces as a single UpstreamDataError; nothing is
retried at this layer.
"""

import re
from typing import Any, AsyncContextManager, Callable, Dict, List, Mapping, Optional, Sequence

import structlog
from sqlalchemy import bindparam, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from valuation_engine.analytics.models import ExhibitionParams, RiskCategory
from valuation_engine.config import get_settings
from valuation_engine.config.settings import Settings
from valuation_engine.database.connection import get_db
from valuation_engine.exceptions import UpstreamDataError

logger = structlog.get_logger(__name__)

SessionScope = Callable[[], AsyncContextManager[AsyncSession]]

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def _identifier(name: str) -> str:
    """Reject configured object names that are not plain SQL identifiers"""
    if not _IDENTIFIER.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


class SqlSource:
    """Shared statement execution for the SQL collaborators"""

    def __init__(
        self,
        session_scope: SessionScope = get_db,
        settings: Optional[Settings] = None,
    ):
        self.session_scope = session_scope
        self.settings = settings or get_settings()

    def _qualify(self, name: str) -> str:
        schema = self.settings.database.schema_name
        if schema:
            return f"{_identifier(schema)}.{_identifier(name)}"
        return _identifier(name)

    async def _fetch(
        self,
        source: str,
        statement,
        params: Optional[Dict[str, Any]] = None,
    ) -> List[Dict[str, Any]]:
        try:
            async with self.session_scope() as session:
                result = await session.execute(statement, params or {})
                rows = [dict(r) for r in result.mappings().all()]
        except SQLAlchemyError as e:
            logger.error("Data source query failed", source=source, error=str(e))
            raise UpstreamDataError(source, str(e)) from e

        logger.debug("Data source rows fetched", source=source, rows=len(rows))
        return rows

    async def _fetch_one(
        self,
        source: str,
        statement,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        rows = await self._fetch(source, statement, params)
        if not rows:
            raise UpstreamDataError(source, "no data returned")
        return rows[0]


class SqlFactSource(SqlSource):
    """Materialized store, SKU and risk facts"""

    def _risk_table(self, category: RiskCategory) -> str:
        names = self.settings.sources
        tables = {
            RiskCategory.STOCKOUT: names.stockout_table,
            RiskCategory.EXPIRATION: names.expiration_table,
            RiskCategory.NO_SALE: names.no_sale_table,
        }
        return self._qualify(tables[RiskCategory(category)])

    async def fetch_store_facts(self) -> List[Dict[str, Any]]:
        table = self._qualify(self.settings.sources.store_facts_table)
        statement = text(
            f"""
            SELECT id_store AS store_id,
                   store_name,
                   segment,
                   ventas_valor AS sales_value,
                   ventas_unidades AS sales_units,
                   inventario_inicial AS inventory_initial,
                   inventario_final AS inventory_final,
                   dias_inventario AS days_inventory,
                   ventas_semana_valor AS weekly_sales_value,
                   ventas_semana_unidades AS weekly_sales_units
            FROM {table}
            """
        )
        return await self._fetch("store_facts", statement)

    async def fetch_risk_details(self, category: RiskCategory) -> List[Dict[str, Any]]:
        category = RiskCategory(category)
        statement = text(
            f"SELECT id_store AS store_id, sku, impacto AS impact FROM {self._risk_table(category)}"
        )
        return await self._fetch(f"risk_{category.value}", statement)

    async def fetch_expiration_details(self) -> List[Dict[str, Any]]:
        detail = self._risk_table(RiskCategory.EXPIRATION)
        product = self._qualify(self.settings.sources.product_table)
        statement = text(
            f"""
            SELECT d.id_store AS store_id,
                   d.sku AS sku,
                   d.impacto AS impact,
                   p.category AS category
            FROM {detail} d
            JOIN {product} p ON p.sku = d.sku
            """
        )
        return await self._fetch("expiration_categories", statement)

    async def fetch_category_products(self, categories: Sequence[str]) -> List[Dict[str, Any]]:
        if not categories:
            return []

        metrics = self._qualify(self.settings.sources.sku_metrics_table)
        product = self._qualify(self.settings.sources.product_table)
        statement = text(
            f"""
            SELECT p.category AS category,
                   m.sku AS sku,
                   m.id_store AS store_id
            FROM {metrics} m
            JOIN {product} p ON p.sku = m.sku
            WHERE p.category IN :categories
            """
        ).bindparams(bindparam("categories", expanding=True))
        return await self._fetch("category_products", statement, {"categories": list(categories)})


class SqlPricingFunction(SqlSource):
    """Promotion pricing stored function, one row per call"""

    async def __call__(self, discount_rate: float, elasticity: float, category: str) -> Mapping[str, Any]:
        function = self._qualify(self.settings.sources.pricing_function)
        statement = text(
            f"""
            SELECT inventario_inicial_total AS inventory_initial_total,
                   ventas_plus AS incremental_units,
                   venta_original AS original_sales,
                   costo AS promotion_cost,
                   valor AS captured_value
            FROM {function}(:p_descuento, :p_elasticidad, :p_categoria)
            """
        )
        return await self._fetch_one(
            "pricing_function",
            statement,
            {"p_descuento": discount_rate, "p_elasticidad": elasticity, "p_categoria": category},
        )


def _exhibition_args(params: ExhibitionParams) -> Dict[str, Any]:
    return {
        "p_costo_exhibicion": params.cost_per_exhibition,
        "p_incremento_venta": params.sales_lift_fraction,
        "p_dias_mes": params.days_in_month,
    }


class SqlROISource(SqlSource):
    """Exhibition ROI stored function, viable (store, sku) rows"""

    async def __call__(self, params: ExhibitionParams) -> List[Dict[str, Any]]:
        function = self._qualify(self.settings.sources.roi_function)
        statement = text(
            f"""
            SELECT id_store AS store_id,
                   sku,
                   retorno_inversion_pesos AS roi_pesos,
                   venta_promedio_diaria AS avg_daily_sales,
                   inventario_final AS final_inventory,
                   pedido_extraordinario_unidades AS extraordinary_order_units,
                   valor_pedido_extraordinario AS extraordinary_order_value
            FROM {function}(:p_costo_exhibicion, :p_incremento_venta, :p_dias_mes)
            """
        )
        return await self._fetch("roi_source", statement, _exhibition_args(params))


class SqlExhibitionSummarySource(SqlSource):
    """Exhibition summary stored function, one row per scenario"""

    async def __call__(self, params: ExhibitionParams) -> Mapping[str, Any]:
        function = self._qualify(self.settings.sources.summary_function)
        statement = text(
            f"""
            SELECT tiendas_viables AS viable_stores,
                   retorno_mensual_neto AS net_monthly_return,
                   costo_total_exhibicion AS total_cost,
                   unidades_totales_pedido AS total_order_units,
                   valor_total_pedido AS total_order_value,
                   roi_promedio_x AS avg_roi
            FROM {function}(:p_costo_exhibicion, :p_incremento_venta, :p_dias_mes)
            """
        )
        return await self._fetch_one("exhibition_summary", statement, _exhibition_args(params))
