"""
Product tools: exact lookup and keyword search.

Both handlers report product-level problems (missing identifier, unknown
product, empty keywords) in their own return value so the model can react
to them. Infrastructure failures from the product store are left to
propagate. The registry turns them into a failure envelope naming the tool.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from salesbot.catalog.products import (
    MissingIdentifierError,
    Product,
    ProductError,
    ProductIdentifier,
)
from salesbot.tools.base import ToolContext


def _require_products(context: ToolContext):
    if context.products is None:
        raise RuntimeError("No product data service configured")
    return context.products


def _format_amount(value: float | None, template: str) -> str | None:
    if value is None:
        return None
    return template.format(value)


def format_product_search_results(products: Sequence[Product], max_items: int = 5) -> str:
    """
    Render search hits as the short text list shown to the customer.

    Only the first ``max_items`` products are listed; the footer says how many
    more were found.
    """
    if not products:
        return "No se encontraron productos para mostrar."

    limited = products[:max_items]
    lines = []
    for index, product in enumerate(limited, start=1):
        description = (product.description or "").strip() or "Sin descripción"
        price_parts = [
            part
            for part in (
                _format_amount(product.retail_price, "detalle: ${:.2f}"),
                _format_amount(product.wholesale_price_bs, "mayor: {:.2f} Bs"),
                _format_amount(product.wholesale_price_usd, "mayor: ${:.2f}"),
            )
            if part is not None
        ]
        price_text = " | ".join(price_parts) if price_parts else "precio no disponible"
        stock = product.stock
        stock_text = f"📦 {stock:g}" if stock is not None else "stock no disponible"
        lines.append(f"#️⃣ {index}. {description}\n   {price_text} | {stock_text}")

    if len(products) == 1:
        header = "✅ Encontré 1 producto que puede servirte:\n\n"
    else:
        header = f"✅ Encontré {len(products)} productos, te muestro los más relevantes:\n\n"

    remaining = len(products) - len(limited)
    footer = ""
    if remaining > 0:
        footer = f"\n...y {remaining} más. Si quieres, aclara mejor lo que buscas para afinar la lista."

    return header + "\n\n".join(lines) + footer


def _product_payload(product: Product) -> dict[str, Any]:
    return {
        "id": product.id,
        "code": product.code,
        "reference": product.reference,
        "description": product.description,
        "stock": product.stock,
        "prices": {
            "wholesaleBs": product.wholesale_price_bs,
            "retail": product.retail_price,
            "wholesaleUsd": product.wholesale_price_usd,
        },
        "createdAt": product.created_at.isoformat(),
        "updatedAt": product.updated_at.isoformat(),
    }


async def get_product(args: dict[str, Any], context: ToolContext) -> dict[str, Any]:
    """Fetch one product by code or reference."""
    code = args.get("code") or None
    reference = args.get("reference") or None
    if not code and not reference:
        return {"success": False, "error": str(MissingIdentifierError())}

    products = _require_products(context)
    context.logger.info(
        f"Looking up product by {'code: ' + code if code else 'reference: ' + reference}"
    )

    try:
        product = await products.get_product_by_identifier(
            ProductIdentifier(code=code, reference=reference)
        )
    except ProductError as e:
        context.logger.warning(f"Product lookup failed: {e}")
        return {"success": False, "error": str(e)}

    return {"success": True, "product": _product_payload(product)}


async def search_products(args: dict[str, Any], context: ToolContext) -> str:
    """Search by keywords and return the formatted list."""
    keywords: list[str] = args["keywords"]
    settings = context.settings
    default_limit = settings.search_default_limit if settings else 10
    display_limit = settings.search_display_limit if settings else 5
    limit = args.get("limit") or default_limit
    min_stock = args.get("minStock")

    products = _require_products(context)
    context.logger.info(f"Searching products with keywords: {', '.join(keywords)}")

    try:
        found = await products.search_products(keywords, limit=limit, min_stock=min_stock)
    except ProductError as e:
        context.logger.warning(f"Product search rejected: {e}")
        return f"❌ Error buscando productos: {e}"

    context.logger.info(f"Found {len(found)} products")
    if not found:
        return f"No se encontraron productos con las palabras clave: {', '.join(keywords)}"
    return format_product_search_results(found, max_items=display_limit)


__all__ = ["format_product_search_results", "get_product", "search_products"]
