"""
Product data service interface and an in-memory implementation.

The real product store (PostgreSQL behind a REST CRUD layer) lives outside
this package; tools only depend on the ``ProductDataService`` protocol.
``InMemoryProductStore`` backs the CLI, the MCP server and the tests.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field


class ProductError(Exception):
    """Base error for product lookups and writes."""


class MissingIdentifierError(ProductError):
    def __init__(self) -> None:
        super().__init__("Debe proporcionar al menos un código o referencia del producto")


class ProductNotFoundError(ProductError):
    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Producto no encontrado: {identifier}")


class ProductValidationError(ProductError):
    def __init__(self, message: str, field: str):
        self.field = field
        super().__init__(f"validation error on {field}: {message}")


class DuplicateProductError(ProductError):
    """Mirrors a unique-constraint violation from a SQL store."""

    code = "23505"

    def __init__(self, code: str | None, reference: str):
        super().__init__(
            f"duplicate key value violates unique constraint (code={code}, reference={reference})"
        )


class ProductRecord(BaseModel):
    """Input for creating a product (one spreadsheet row)."""

    code: str | None = None
    reference: str = Field(min_length=1)
    description: str = ""
    stock: float = 0
    wholesale_price_bs: float = 0
    retail_price: float = 0
    wholesale_price_usd: float = 0


class Product(ProductRecord):
    """A stored product."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ProductIdentifier(BaseModel):
    code: str | None = None
    reference: str | None = None

    def describe(self) -> str:
        return self.code or self.reference or "desconocido"


@runtime_checkable
class ProductDataService(Protocol):
    """Read-side lookups used by the product tools."""

    async def get_product_by_identifier(self, identifier: ProductIdentifier) -> Product:
        ...

    async def search_products(
        self, keywords: list[str], limit: int = 10, min_stock: float | None = None
    ) -> list[Product]:
        ...


class InMemoryProductStore:
    """
    Dict-backed product store.

    Search matches every keyword (case-insensitive) against description,
    code and reference, and orders by number of keyword hits then stock.
    """

    def __init__(self, products: Iterable[Product] | None = None):
        self._products: dict[str, Product] = {}
        self._lock = asyncio.Lock()
        for product in products or []:
            self._products[product.id] = product

    def __len__(self) -> int:
        return len(self._products)

    async def create(self, record: ProductRecord) -> Product:
        """Insert a product. (code, reference) pairs are unique."""
        if record.stock < 0:
            raise ProductValidationError("La existencia no puede ser negativa", "stock")
        for name in ("wholesale_price_bs", "retail_price", "wholesale_price_usd"):
            if getattr(record, name) < 0:
                raise ProductValidationError("El precio no puede ser negativo", name)

        async with self._lock:
            for existing in self._products.values():
                if existing.code == record.code and existing.reference == record.reference:
                    raise DuplicateProductError(record.code, record.reference)
            product = Product(**record.model_dump())
            self._products[product.id] = product
            return product

    async def get_product_by_identifier(self, identifier: ProductIdentifier) -> Product:
        if not identifier.code and not identifier.reference:
            raise MissingIdentifierError()

        for product in self._products.values():
            if identifier.code and product.code == identifier.code:
                return product
            if identifier.reference and product.reference == identifier.reference:
                return product
        raise ProductNotFoundError(identifier.describe())

    async def search_products(
        self, keywords: list[str], limit: int = 10, min_stock: float | None = None
    ) -> list[Product]:
        cleaned = [k.strip().lower() for k in keywords if k and k.strip()]
        if not cleaned:
            raise ProductValidationError("Debe proporcionar al menos una palabra clave", "keywords")

        scored: list[tuple[int, Product]] = []
        for product in self._products.values():
            if min_stock is not None and product.stock < min_stock:
                continue
            haystack = " ".join(
                part.lower() for part in (product.description, product.code or "", product.reference)
            )
            hits = sum(1 for keyword in cleaned if keyword in haystack)
            if hits:
                scored.append((hits, product))

        scored.sort(key=lambda item: (-item[0], -item[1].stock))
        return [product for _, product in scored[: max(limit, 0)]]


__all__ = [
    "ProductError",
    "MissingIdentifierError",
    "ProductNotFoundError",
    "ProductValidationError",
    "DuplicateProductError",
    "ProductRecord",
    "Product",
    "ProductIdentifier",
    "ProductDataService",
    "InMemoryProductStore",
]
