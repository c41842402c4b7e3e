"""Per-cycle aggregation of category catalogs into flat product lists."""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from unlisted.errors import StateConflict
from unlisted.logging_config import get_logger, log_pipeline_event
from unlisted.models import CategoryLink, Product

__all__ = ["AggregationState", "ProductAggregator", "flatten_catalog"]

logger = get_logger("aggregator")


def flatten_catalog(catalog: Dict[str, Any], category: str) -> List[Product]:
    """Pull every product out of every sub-category, linked to its origin.

    Products keep the order they appear in, sub-category by sub-category.
    """
    products: List[Product] = []
    for sub_category in catalog.get("sub_categories", []) or []:
        link = CategoryLink(
            category=category,
            sub_category_id=sub_category.get("id"),
            sub_category_name=sub_category.get("name"),
        )
        for raw in sub_category.get("products", []) or []:
            products.append(Product.from_dict(raw).with_link(link))
    return products


@dataclass
class AggregationState:
    """Counters and partial collections for one refresh cycle."""

    expected: int
    completed: int = 0
    products: List[Product] = field(default_factory=list)
    sale_products: List[Product] = field(default_factory=list)
    sale_ingested: bool = False


class ProductAggregator:
    """Folds category catalogs into one cycle's AggregationState.

    Ingests may arrive from several fetch threads in any order; they are
    serialized on an internal lock. The non-sale categories are complete
    when exactly ``expected`` of them have been ingested, at which point
    ``complete`` is set. The sale category is tracked separately and does
    not count towards ``expected``.
    """

    def __init__(self, expected: int, cycle: Optional[int] = None):
        if expected < 0:
            raise ValueError("expected category count must be >= 0")
        self.cycle = cycle
        self.state = AggregationState(expected=expected)
        self._lock = threading.Lock()
        self.complete = threading.Event()
        if expected == 0:
            self.complete.set()

    def ingest(self, catalog: Dict[str, Any], category: str, is_sale_category: bool) -> bool:
        """Add one category's products to the cycle.

        Returns:
            True if this ingest completed the expected non-sale categories

        Raises:
            ParseFailure: If a product record is malformed (nothing is added)
            StateConflict: On a second sale ingest, or an ingest after completion
        """
        products = flatten_catalog(catalog, category)

        with self._lock:
            state = self.state
            if is_sale_category:
                if state.sale_ingested:
                    raise StateConflict(f"Sale category already ingested for cycle {self.cycle}")
                state.sale_products.extend(products)
                state.sale_ingested = True
                just_completed = False
            else:
                if state.completed >= state.expected:
                    raise StateConflict(
                        f"Category {category} arrived after cycle {self.cycle} completed"
                    )
                state.products.extend(products)
                state.completed += 1
                just_completed = state.completed == state.expected
                if just_completed:
                    self.complete.set()
            completed, expected = state.completed, state.expected

        log_pipeline_event(
            "category_ingested",
            {
                "message": f"Ingested {category}: {len(products)} products ({completed}/{expected})",
                "cycle": self.cycle,
                "category": category,
                "is_sale_category": is_sale_category,
                "products": len(products),
                "completed": completed,
                "expected": expected,
            },
            logger_name="aggregator",
        )
        return just_completed

    @property
    def is_complete(self) -> bool:
        return self.complete.is_set()

    def snapshot(self) -> Tuple[Tuple[Product, ...], Tuple[Product, ...]]:
        """Freeze the collected lists as (products, sale_products).

        Raises:
            StateConflict: If the cycle has not received every category yet
        """
        with self._lock:
            if not self.complete.is_set() or not self.state.sale_ingested:
                raise StateConflict(
                    f"Aggregation for cycle {self.cycle} incomplete: "
                    f"{self.state.completed}/{self.state.expected} categories, "
                    f"sale category {'in' if self.state.sale_ingested else 'missing'}"
                )
            return tuple(self.state.products), tuple(self.state.sale_products)
