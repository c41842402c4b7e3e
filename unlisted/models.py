"""Data models for products and published datasets."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Any, Dict, Optional, Tuple, Union

from unlisted.errors import ParseFailure

__all__ = ["CategoryLink", "Product", "Dataset"]

Number = Union[int, float]

# Keys handled by Product itself; everything else is carried in ``extra``
_MODEL_KEYS = frozenset({"entity_id", "price", "special_price", "categoryLink", "salePercent"})


def _to_number(value: Any, field_name: str, entity_id: Any) -> Number:
    if isinstance(value, bool):
        raise ParseFailure(f"Product {entity_id}: {field_name} is not numeric: {value!r}")
    if isinstance(value, (int, float)):
        return value
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ParseFailure(f"Product {entity_id}: {field_name} is not numeric: {value!r}") from e
    return int(number) if number.is_integer() else number


@dataclass(frozen=True)
class CategoryLink:
    """Where a product was found: primary category and sub-category."""

    category: str
    sub_category_id: Any
    sub_category_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "cat": self.category,
            "sub_cat": {"id": self.sub_category_id, "name": self.sub_category_name},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CategoryLink":
        """Raises ParseFailure if the link has no category or a malformed sub_cat."""
        if not isinstance(data.get("cat"), str):
            raise ParseFailure(f"categoryLink has no category: {data!r}")
        sub_cat = data.get("sub_cat") or {}
        if not isinstance(sub_cat, dict):
            raise ParseFailure(f"categoryLink sub_cat is not an object: {sub_cat!r}")
        return cls(
            category=data["cat"],
            sub_category_id=sub_cat.get("id"),
            sub_category_name=sub_cat.get("name"),
        )


@dataclass(frozen=True)
class Product:
    """A single retailer product.

    ``special_price`` of 0 means the product is not discounted.
    ``sale_percent`` is only set by the diff engine, which always recomputes
    it from the price fields.
    """

    entity_id: Any
    price: Number
    special_price: Number = 0
    category_link: Optional[CategoryLink] = None
    sale_percent: Optional[float] = None

    # Remaining upstream fields (name, url, images, ...), passed through as-is
    extra: Dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_discounted(self) -> bool:
        return self.special_price != 0

    def with_link(self, link: CategoryLink) -> "Product":
        return replace(self, category_link=link)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize using the retailer's field names."""
        data = dict(self.extra)
        data["entity_id"] = self.entity_id
        data["price"] = self.price
        data["special_price"] = self.special_price
        if self.category_link is not None:
            data["categoryLink"] = self.category_link.to_dict()
        if self.sale_percent is not None:
            data["salePercent"] = self.sale_percent
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Product":
        """Build a product from a raw catalog or snapshot record.

        Raises:
            ParseFailure: If the record has no scalar entity_id, non-numeric
                prices or a malformed categoryLink
        """
        if not isinstance(data, dict):
            raise ParseFailure(f"Product record is not an object: {type(data).__name__}")
        if data.get("entity_id") is None:
            raise ParseFailure("Product record has no entity_id")

        entity_id = data["entity_id"]
        if isinstance(entity_id, bool) or not isinstance(entity_id, (str, int, float)):
            raise ParseFailure(f"Product entity_id is not a scalar: {entity_id!r}")

        price = _to_number(data.get("price"), "price", entity_id)
        special = data.get("special_price")
        # null counts as not discounted, not as 100% off
        special_price = 0 if special is None else _to_number(special, "special_price", entity_id)

        link = None
        if data.get("categoryLink") is not None:
            if not isinstance(data["categoryLink"], dict):
                raise ParseFailure(f"Product {entity_id}: categoryLink is not an object")
            link = CategoryLink.from_dict(data["categoryLink"])

        return cls(
            entity_id=entity_id,
            price=price,
            special_price=special_price,
            category_link=link,
            extra={k: v for k, v in data.items() if k not in _MODEL_KEYS},
        )


@dataclass(frozen=True)
class Dataset:
    """An immutable, fully computed snapshot served to readers."""

    products: Tuple[Product, ...]
    sale_category: Tuple[Product, ...]
    complete_sales: Tuple[Product, ...]
    unlisted_sales: Tuple[Product, ...]
    cycle: int
    source: str = "refresh"
    published_at: datetime = field(default_factory=datetime.now)

    def summary(self) -> Dict[str, Any]:
        return {
            "cycle": self.cycle,
            "source": self.source,
            "published_at": self.published_at.isoformat(),
            "products": len(self.products),
            "sale_category": len(self.sale_category),
            "complete_sales": len(self.complete_sales),
            "unlisted_sales": len(self.unlisted_sales),
        }
