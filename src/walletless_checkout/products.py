"""Storefront catalog and product payload validation."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from walletless_checkout.errors import ValidationError


@dataclass(frozen=True)
class Product:
    name: str
    price: float
    id: str | None = None
    image: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "price": self.price, "image": self.image}


CATALOG: tuple[Product, ...] = (
    Product(id="prod_1", name="Hackathon Hoodie", price=20,
            image="bg-gradient-to-br from-purple-500 via-blue-500 to-cyan-400"),
    Product(id="prod_2", name="Dev Tee", price=15,
            image="bg-gradient-to-br from-green-400 to-blue-500"),
    Product(id="prod_3", name="WAGMI Cap", price=10,
            image="bg-gradient-to-br from-yellow-400 via-red-500 to-pink-500"),
)


def parse_product(data: Any) -> Product:
    """Validate a product object from a request body.

    Raises ValidationError (400) on a missing name or a non-positive price.
    """
    if not isinstance(data, dict):
        raise ValidationError(
            "Invalid product parameter",
            details={"details": "product must be an object with name and price"},
        )
    price = data.get("price")
    # bool is an int subclass; reject it explicitly
    if isinstance(price, bool) or not isinstance(price, (int, float)) or price <= 0:
        raise ValidationError(
            "Invalid product price",
            details={"details": "Product must have a valid price greater than 0."},
        )
    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        raise ValidationError(
            "Invalid product name",
            details={"details": "Product must have a non-empty name."},
        )
    return Product(
        name=name.strip(),
        price=price,
        id=data.get("id"),
        image=data.get("image"),
    )
