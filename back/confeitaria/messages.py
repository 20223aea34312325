"""
WhatsApp share texts.

The bakery sends order summaries to clients, and catalog customers send their
checkout to the bakery, through wa.me links. Texts are in Portuguese as they
are read by the bakery's customers.
"""

import re
from urllib.parse import quote

from . import models
from .pricing import format_price, order_breakdown
from .settings import settings

STATUS_LABELS = {
    models.OrderStatus.quote: "Orçamento",
    models.OrderStatus.confirmed: "Confirmado",
    models.OrderStatus.in_production: "Em produção",
    models.OrderStatus.ready: "Pronto",
    models.OrderStatus.delivered: "Entregue",
    models.OrderStatus.cancelled: "Cancelado",
}


def _price(cents: int) -> str:
    return format_price(cents, settings.currency_symbol)


def _bakery_name(bakery: models.BakerySettings | None) -> str:
    return (bakery.bakery_name if bakery else None) or "Confeitaria"


def whatsapp_link(text: str, phone: str | None = None) -> str:
    """wa.me link; Brazilian numbers without country code get 55 prepended."""
    digits = re.sub(r"\D", "", phone or "")
    if digits and not (digits.startswith("55") and len(digits) > 11):
        digits = f"55{digits}"
    return f"https://wa.me/{digits}?text={quote(text)}"


def _item_lines(items: list[models.OrderItem], with_totals: bool) -> list[str]:
    lines = []
    for item in items:
        line = f"• {item.product_name} - {item.quantity}x {_price(item.unit_price_cents)}"
        if with_totals:
            line += f" = {_price(item.total_cents)}"
        lines.append(line)
        if item.size:
            lines.append(f"   ↳ Tamanho: {item.size.get('name')}")
        for variation in item.variations or []:
            lines.append(f"   ↳ {variation.get('group')}: {variation.get('name')}")
        if item.addons:
            addons = ", ".join(
                f"{a.get('name')} (+{_price(int(a.get('price_cents') or 0))})" for a in item.addons
            )
            lines.append(f"   ➕ Adicionais: {addons}")
    return lines


def order_summary_message(order: models.Order, bakery: models.BakerySettings | None) -> str:
    breakdown = order_breakdown(
        (item.total_cents for item in order.items),
        order.discount_percentage,
        order.delivery_fee_cents,
    )

    lines = [
        f"🧁 *{_bakery_name(bakery)}*",
        "",
        f"📦 *Resumo do Pedido #{order.id}*",
        f"👤 Cliente: {order.client_name}",
        f"📅 Realizado em: {order.created_at:%d/%m/%Y}",
    ]
    if order.delivery_date:
        lines.append(f"🚚 Entrega para: {order.delivery_date:%d/%m/%Y}")
    lines.append("🧾 *Itens do Pedido:*")
    lines.extend(_item_lines(order.items, with_totals=True))
    lines.append("💵 *Resumo Financeiro:*")
    lines.append(f"Subtotal: {_price(breakdown['subtotal_cents'])}")
    if order.discount_percentage > 0:
        lines.append(
            f"Desconto ({order.discount_percentage:g}%): -{_price(breakdown['discount_cents'])}"
        )
    if order.delivery_fee_cents > 0:
        lines.append(f"Taxa de entrega: {_price(order.delivery_fee_cents)}")
    lines.append(f"*Valor Total: {_price(breakdown['total_cents'])}*")
    if order.payment_method:
        lines.append(f"💳 Forma de Pagamento: {order.payment_method}")
    if order.notes:
        lines.append(f"📝 Observações: {order.notes}")
    if bakery and bakery.pix_key:
        lines.append(f"🔑 Chave Pix para pagamento: {bakery.pix_key}")
    lines.append(f"📌 *Status Atual:* {STATUS_LABELS[order.status]}")
    return "\n".join(lines)


def checkout_message(
    order: models.Order,
    bakery: models.BakerySettings | None,
    customer: models.CheckoutCustomer,
) -> str:
    lines = [
        f"Olá, *{_bakery_name(bakery)}*!",
        "",
        "Estou finalizando um pedido com os seguintes itens:",
        "*Itens selecionados:*",
        *_item_lines(order.items, with_totals=False),
        "",
        f"💰 *Total estimado:* {_price(order.total_cents)}",
        "",
        "*Informações do cliente:*",
        f"📍 Nome: {customer.name}",
        f"📞 Telefone: {customer.phone}",
        f"🏠 Endereço: {customer.address}",
        f"📅 Entrega: {customer.delivery_date:%d/%m/%Y}",
        f"⏰ Retirada: {customer.pickup_time}",
        "",
        "Aguardo a confirmação para dar continuidade. Obrigado!",
    ]
    return "\n".join(lines)
