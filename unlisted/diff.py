"""Sale detection: which products are discounted, and which of those the
retailer leaves out of its own sale category.

All functions here are pure; they never mutate the products they receive.
"""

import math
from dataclasses import replace
from typing import Iterable, List, Tuple

from unlisted.logging_config import get_logger
from unlisted.models import Product

__all__ = ["sale_percent", "compute_on_sale", "compute_unlisted", "build_sales_view"]

logger = get_logger("diff")


def sale_percent(price, special_price) -> float:
    """Discount fraction (price - special_price) / price.

    Falls back to 0 when the fraction is undefined. A zero price is a
    data-quality problem upstream; it is reported at debug level only.
    """
    try:
        percent = (price - special_price) / price
    except ZeroDivisionError:
        return 0.0
    if math.isnan(percent) or math.isinf(percent):
        return 0.0
    return float(percent)


def compute_on_sale(products: Iterable[Product]) -> List[Product]:
    """Return copies of the discounted products with sale_percent recomputed."""
    sales: List[Product] = []
    for product in products:
        if not product.is_discounted:
            continue
        if not product.price:
            logger.debug(f"Product {product.entity_id} has zero price, salePercent defaults to 0")
        sales.append(replace(product, sale_percent=sale_percent(product.price, product.special_price)))
    return sales


def compute_unlisted(
    sale_category: Iterable[Product],
    discounted: Iterable[Product],
) -> List[Product]:
    """Discounted products whose identity is absent from the sale category.

    Products that only appear in the sale category are ignored. The result is
    sorted ascending by sale_percent; the sort is stable so ties keep their
    input order.
    """
    listed_ids = {p.entity_id for p in sale_category}
    unlisted = [p for p in discounted if p.entity_id not in listed_ids]
    return sorted(unlisted, key=lambda p: p.sale_percent or 0.0)


def build_sales_view(
    products: Iterable[Product],
    sale_category: Iterable[Product],
) -> Tuple[List[Product], List[Product]]:
    """Compute (complete_sales, unlisted_sales) for a product collection."""
    complete_sales = compute_on_sale(products)
    return complete_sales, compute_unlisted(sale_category, complete_sales)
