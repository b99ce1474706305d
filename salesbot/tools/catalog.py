"""
The static tool catalog.

``load_catalog`` is the loader handed to ``ToolRegistry``. Each entry pairs a
``ToolName`` with its parameter schema and handler; the registry checks the
table when it loads it.
"""

from __future__ import annotations

from salesbot.tools.base import ToolDefinition, ToolName
from salesbot.tools.notifications import send_sale_email
from salesbot.tools.products import get_product, search_products
from salesbot.tools.schema import (
    ArraySchema,
    IntegerSchema,
    NumberSchema,
    ObjectSchema,
    StringSchema,
)

GET_PRODUCT_PARAMETERS = ObjectSchema(
    properties={
        "code": StringSchema(optional=True, description="Product code to search for"),
        "reference": StringSchema(
            optional=True, description="Product reference number to search for"
        ),
    }
)

SEARCH_PRODUCTS_PARAMETERS = ObjectSchema(
    properties={
        "keywords": ArraySchema(
            items=StringSchema(),
            min_items=1,
            description="List of keywords to search in products (e.g., ['laptop', 'dell', '16gb'])",
        ),
        "limit": IntegerSchema(
            optional=True,
            default=10,
            description="Maximum number of results to return (default: 10)",
        ),
        "minStock": IntegerSchema(
            optional=True,
            description="Filter only products with stock greater than or equal to this value",
        ),
    }
)

SALE_PRODUCT = ObjectSchema(
    properties={
        "id": StringSchema(),
        "code": StringSchema(nullable=True),
        "reference": StringSchema(nullable=True),
        "description": StringSchema(nullable=True),
        "stock": NumberSchema(nullable=True),
        "wholesale_price_bs": NumberSchema(nullable=True, optional=True),
        "retail_price": NumberSchema(nullable=True, optional=True),
        "wholesale_price_usd": NumberSchema(nullable=True, optional=True),
    }
)

SEND_SALE_EMAIL_PARAMETERS = ObjectSchema(
    properties={
        "phone": StringSchema(description="Customer phone number"),
        "products": ArraySchema(
            items=SALE_PRODUCT, description="List of purchased products with prices"
        ),
    }
)


def load_catalog() -> list[ToolDefinition]:
    """Return every tool the assistant may call."""
    return [
        ToolDefinition(
            name=ToolName.GET_PRODUCT,
            description=(
                "Gets detailed information about a specific product by its code "
                "or reference number"
            ),
            parameters=GET_PRODUCT_PARAMETERS,
            handler=get_product,
        ),
        ToolDefinition(
            name=ToolName.SEARCH_PRODUCTS,
            description=(
                "Searches for products using keywords in description, code, or reference. "
                "Perfect for finding products when user describes what they need."
            ),
            parameters=SEARCH_PRODUCTS_PARAMETERS,
            handler=search_products,
        ),
        ToolDefinition(
            name=ToolName.SEND_SALE_EMAIL,
            description="Sends a sale confirmation email including product details and total price",
            parameters=SEND_SALE_EMAIL_PARAMETERS,
            handler=send_sale_email,
        ),
    ]


__all__ = [
    "GET_PRODUCT_PARAMETERS",
    "SEARCH_PRODUCTS_PARAMETERS",
    "SEND_SALE_EMAIL_PARAMETERS",
    "load_catalog",
]
