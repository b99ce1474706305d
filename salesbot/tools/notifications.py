"""
Sale confirmation email tool.
"""

from __future__ import annotations

from html import escape
from typing import Any

from salesbot.tools.base import ToolContext

SALE_EMAIL_SUBJECT = "Confirmación de tu compra"


def render_sale_email(recipient: str, phone: str, products: list[dict[str, Any]], total: float) -> str:
    """Build the HTML body of a sale confirmation."""
    rows = "".join(
        "<tr>"
        f"<td>{escape(str(p.get('code') or '-'))}</td>"
        f"<td>{escape(str(p.get('description') or '-'))}</td>"
        f"<td style=\"text-align:right;\">{p.get('retail_price') or 0}</td>"
        "</tr>"
        for p in products
    )
    return (
        '<div style="font-family: Arial, sans-serif; padding: 20px;">'
        "<h2>🛒 Confirmación de compra</h2>"
        f"<p><strong>Cliente:</strong> {escape(recipient)}</p>"
        f"<p><strong>Teléfono:</strong> {escape(phone)}</p>"
        "<h3>Productos adquiridos:</h3>"
        '<table style="width:100%; border-collapse: collapse;" border="1">'
        "<thead><tr><th>Código</th><th>Descripción</th><th>Precio</th></tr></thead>"
        f"<tbody>{rows}</tbody>"
        "</table>"
        f'<h2>Total: <span style="color: green;">{total}</span></h2>'
        "<p>Gracias por tu compra 💚</p>"
        "</div>"
    )


async def send_sale_email(args: dict[str, Any], context: ToolContext) -> dict[str, Any]:
    """
    Email a sale summary to the shop.

    The total is the sum of ``retail_price`` over the purchased products
    (missing prices count as 0). Transport failures are reported in the
    result, never raised.
    """
    phone: str = args["phone"]
    products: list[dict[str, Any]] = args["products"]
    recipient = context.settings.sale_email_recipient if context.settings else ""

    total = sum((p.get("retail_price") or 0) for p in products)
    context.logger.info(f"Preparing sale email for {phone}, total: {total}")

    try:
        if context.notifier is None:
            raise RuntimeError("No email sender configured")
        if not recipient:
            raise ValueError("Sale email recipient not configured. Set TOOLS__SALE_EMAIL_RECIPIENT.")
        html = render_sale_email(recipient, phone, products, total)
        await context.notifier.send_email(recipient, SALE_EMAIL_SUBJECT, html)
    except Exception as e:
        context.logger.error(f"Error sending sale email: {e}")
        return {"success": False, "error": str(e) or "Error enviando correo"}

    return {"success": True, "message": "Correo de venta enviado correctamente", "total": total}


__all__ = ["SALE_EMAIL_SUBJECT", "render_sale_email", "send_sale_email"]
