"""
External Collaborator Interfaces

The engine never computes pricing or ROI formulas itself and never plans
queries; it talks to these collaborators. Fakes implementing them are used
in tests.
"""

from typing import Any, Awaitable, List, Mapping, Protocol, Sequence, Union

from valuation_engine.analytics.models import ExhibitionParams, RiskCategory

Row = Mapping[str, Any]


class FactSource(Protocol):
    """Read-only access to materialized store, SKU and risk facts"""

    async def fetch_store_facts(self) -> List[Row]:
        """StoreFact rows for the current snapshot"""
        ...

    async def fetch_risk_details(self, category: RiskCategory) -> List[Row]:
        """{store_id, impact} rows of one risk category"""
        ...

    async def fetch_expiration_details(self) -> List[Row]:
        """{store_id, sku, impact, category} expiration rows with product category"""
        ...

    async def fetch_category_products(self, categories: Sequence[str]) -> List[Row]:
        """{category, sku, store_id} rows for the given categories"""
        ...


class PricingFunction(Protocol):
    """cost(discount_rate, elasticity, category) -> pricing result mapping"""

    def __call__(
        self, discount_rate: float, elasticity: float, category: str
    ) -> Union[Row, Awaitable[Row]]:
        ...


class ROISource(Protocol):
    """roiRows(params) -> viable (store, sku) ROI rows"""

    def __call__(self, params: ExhibitionParams) -> Union[List[Row], Awaitable[List[Row]]]:
        ...


class ExhibitionSummarySource(Protocol):
    """summary(params) -> aggregate exhibition figures"""

    def __call__(self, params: ExhibitionParams) -> Union[Row, Awaitable[Row]]:
        ...
