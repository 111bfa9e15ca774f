"""
Test Suite Configuration
"""
import asyncio
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pytest

from valuation_engine.analytics.models import ExhibitionParams, RiskCategory
from valuation_engine.config.settings import DatabaseSettings, EngineSettings, Settings


@pytest.fixture
def test_settings() -> Settings:
    """Settings with deterministic engine defaults"""
    return Settings(
        database=DatabaseSettings(schema_name=None),
        engine=EngineSettings(
            cost_per_exhibition=500.0,
            sales_lift_fraction=0.5,
            days_in_month=30,
            period_days=28,
            top_stores_limit=10,
            top_segments_limit=5,
            top_expiration_categories_limit=2,
            pricing_concurrency=4,
        ),
    )


@pytest.fixture
def store_fact_rows() -> List[Dict[str, Any]]:
    """Raw store rows as a data source returns them (strings, nulls)"""
    return [
        {"store_id": 1, "store_name": "Centro", "segment": "Hot", "sales_value": "30000", "sales_units": 1500,
         "days_inventory": 12, "inventory_initial": 900, "inventory_final": 400},
        {"store_id": 2, "store_name": "Norte", "segment": "Slow", "sales_value": 10000.0, "sales_units": "500",
         "days_inventory": 70, "inventory_initial": 1200, "inventory_final": 1100},
        {"store_id": 3, "store_name": "Sur", "segment": "Hot", "sales_value": 30000, "sales_units": 1500,
         "days_inventory": 18, "inventory_initial": 800, "inventory_final": 300},
        {"store_id": 4, "store_name": "Oriente", "segment": "Slow", "sales_value": None, "sales_units": None,
         "days_inventory": "n/a", "inventory_initial": 500, "inventory_final": 500},
        {"store_id": 5, "store_name": "Poniente", "segment": "Balanced", "sales_value": 20000, "sales_units": 800,
         "days_inventory": 35, "inventory_initial": 700, "inventory_final": 350},
    ]


@pytest.fixture
def roi_rows() -> List[Dict[str, Any]]:
    """ROI rows: store 10 with two SKUs at 500, store 20 with one SKU at 800"""
    return [
        {"store_id": 10, "sku": "SKU-1", "roi_pesos": 500, "avg_daily_sales": 4.5, "final_inventory": 20,
         "extraordinary_order_units": 30, "extraordinary_order_value": 900.0},
        {"store_id": 10, "sku": "SKU-2", "roi_pesos": "500", "avg_daily_sales": 2.0, "final_inventory": 5,
         "extraordinary_order_units": 10, "extraordinary_order_value": 250.0},
        {"store_id": 20, "sku": "SKU-1", "roi_pesos": 800, "avg_daily_sales": 6.0, "final_inventory": 8,
         "extraordinary_order_units": 40, "extraordinary_order_value": 1200.0},
    ]


@pytest.fixture
def summary_row() -> Dict[str, Any]:
    return {
        "viable_stores": 2,
        "net_monthly_return": "1500",
        "total_cost": 1000,
        "total_order_units": 80,
        "total_order_value": 2350.0,
        "avg_roi": 1.5,
    }


@pytest.fixture
def risk_rows() -> Dict[RiskCategory, List[Dict[str, Any]]]:
    """Store 1 appears in both stockout and expiration"""
    return {
        RiskCategory.STOCKOUT: [
            {"store_id": 1, "sku": "A", "impact": 100.0},
            {"store_id": 1, "sku": "B", "impact": "50"},
            {"store_id": 2, "sku": "A", "impact": 25},
        ],
        RiskCategory.EXPIRATION: [
            {"store_id": 1, "sku": "C", "impact": 300, "category": "CHIPS"},
            {"store_id": 3, "sku": "D", "impact": 200, "category": "NACHOS"},
            {"store_id": 3, "sku": "E", "impact": 150, "category": "CHIPS"},
            {"store_id": 4, "sku": "F", "impact": 80, "category": "SAUCES"},
        ],
        RiskCategory.NO_SALE: [
            {"store_id": 5, "sku": "G", "impact": None},
            {"store_id": 5, "sku": "H", "impact": 75},
        ],
    }


@pytest.fixture
def category_product_rows() -> List[Dict[str, Any]]:
    return [
        {"category": "CHIPS", "sku": "A", "store_id": 1},
        {"category": "CHIPS", "sku": "A", "store_id": 2},
        {"category": "CHIPS", "sku": "B", "store_id": 1},
        {"category": "NACHOS", "sku": "D", "store_id": 3},
    ]


class FakeFactSource:
    """In-memory FactSource"""

    def __init__(
        self,
        store_facts: Optional[List[Mapping[str, Any]]] = None,
        risk_rows: Optional[Dict[RiskCategory, List[Mapping[str, Any]]]] = None,
        category_products: Optional[List[Mapping[str, Any]]] = None,
        fail_with: Optional[Exception] = None,
    ):
        self.store_facts = store_facts or []
        self.risk_rows = risk_rows or {}
        self.category_products = category_products or []
        self.fail_with = fail_with
        self.calls: List[str] = []

    def _check(self, name: str) -> None:
        self.calls.append(name)
        if self.fail_with is not None:
            raise self.fail_with

    async def fetch_store_facts(self):
        self._check("store_facts")
        return list(self.store_facts)

    async def fetch_risk_details(self, category):
        self._check(f"risk_{RiskCategory(category).value}")
        return list(self.risk_rows.get(RiskCategory(category), []))

    async def fetch_expiration_details(self):
        self._check("expiration_details")
        return list(self.risk_rows.get(RiskCategory.EXPIRATION, []))

    async def fetch_category_products(self, categories: Sequence[str]):
        self._check("category_products")
        return [r for r in self.category_products if r["category"] in categories]


class FakePricing:
    """
    Async pricing function driven by a per-category inventory table.

    incremental_units = inventory * elasticity * discount_rate
    """

    def __init__(self, inventory: Dict[str, float], failing: Sequence[str] = (), delay: float = 0.0):
        self.inventory = inventory
        self.failing = set(failing)
        self.delay = delay
        self.in_flight = 0
        self.max_in_flight = 0
        self.calls: List[tuple] = []

    async def __call__(self, discount_rate: float, elasticity: float, category: str):
        self.calls.append((discount_rate, elasticity, category))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if category in self.failing:
                raise RuntimeError(f"pricing unavailable for {category}")

            inventory = self.inventory.get(category, 0.0)
            incremental = inventory * elasticity * discount_rate
            original_sales = incremental * 10.0
            return {
                "inventory_initial_total": inventory,
                "incremental_units": incremental,
                "original_sales": original_sales,
                "promotion_cost": original_sales * discount_rate,
                "captured_value": original_sales * (1 - discount_rate),
            }
        finally:
            self.in_flight -= 1


@pytest.fixture
def fake_pricing() -> FakePricing:
    return FakePricing({"CHIPS": 1000.0, "NACHOS": 400.0, "SAUCES": 0.0})


@pytest.fixture
def default_params() -> ExhibitionParams:
    return ExhibitionParams()


@pytest.fixture
def make_pricing():
    """Factory for pricing fakes with custom inventory or failures"""
    return FakePricing


@pytest.fixture
def make_fact_source():
    return FakeFactSource
