"""WhatsApp message templates.

Reply keywords (SANGGUP, TIDAK, AMBIL, SETUJU, TOLAK, ...) are the commands
parsed by js_webhook.domain.commands and must stay in sync with it.
"""

from config.settings import settings
from src.js_common.money import rupiah_to_display


def short_ref(order_id: str) -> str:
    """Human-typable order reference: first 8 chars of the id."""
    return order_id[:8]


def tracking_url(order_id: str) -> str:
    return f"{settings.APP_URL}/track/{order_id}"


def confirm_url(order_id: str, delivery_token: str) -> str:
    return f"{settings.APP_URL}/confirm/{order_id}?token={delivery_token}"


def payment_url(order_id: str) -> str:
    return f"{settings.APP_URL}/pay/{order_id}"


# --- suppliers ---

def supplier_offer(
    order_id: str,
    product_name: str,
    quantity: int,
    unit: str,
    weight_kg: float,
    buyer_address: str,
    distance_km: float,
    buyer_price: int,
) -> str:
    ref = short_ref(order_id)
    return (
        f"🛒 *New request #{ref}*\n\n"
        f"Product: {product_name}\n"
        f"Quantity: {quantity} {unit} (~{weight_kg:g} kg)\n"
        f"Deliver to: {buyer_address} ({distance_km:.1f} km)\n"
        f"Buyer price: {rupiah_to_display(buyer_price)}\n\n"
        f'Reply "SANGGUP KIRIM {ref}" to supply and deliver yourself\n'
        f'Reply "SANGGUP AMBIL {ref}" to supply with a courier pickup\n'
        f'Reply "SANGGUP#{ref}#<price>" to offer a different price\n'
        f'Reply "TIDAK {ref}" if you cannot supply'
    )


def supplier_no_courier(order_id: str) -> str:
    ref = short_ref(order_id)
    return (
        f"⚠️ No courier is available near you for order #{ref}.\n"
        f'Reply "KIRIM SENDIRI {ref}" to deliver it yourself, '
        f'or "CARI KURIR {ref}" to search again later.'
    )


def supplier_courier_assigned(order_id: str, courier_name: str, courier_phone: str) -> str:
    return (
        f"🚚 Courier {courier_name} ({courier_phone}) will pick up order "
        f"#{short_ref(order_id)} once the buyer has paid."
    )


def supplier_payment_received(order_id: str, total_amount: int, self_delivery: bool) -> str:
    next_step = (
        "Please deliver the goods to the buyer."
        if self_delivery
        else "Please prepare the goods for courier pickup."
    )
    return (
        f"💰 Order #{short_ref(order_id)} is paid "
        f"({rupiah_to_display(total_amount)} held in escrow).\n{next_step}\n"
        "Funds are released after the buyer confirms receipt."
    )


def supplier_order_completed(order_id: str, amount: int) -> str:
    return (
        f"✅ Order #{short_ref(order_id)} completed. "
        f"{rupiah_to_display(amount)} has been added to your balance."
    )


def supplier_offer_approved(order_id: str, price: int) -> str:
    return (
        f"🎉 The buyer accepted your price of {rupiah_to_display(price)} for order "
        f"#{short_ref(order_id)}. Wait for the payment notice before delivering."
    )


def supplier_offer_declined(order_id: str) -> str:
    return f"🙏 The buyer declined your price for order #{short_ref(order_id)}."


def supplier_self_delivery_confirmed(order_id: str) -> str:
    return (
        f"👍 You will deliver order #{short_ref(order_id)} yourself. "
        "Wait for the payment notice before delivering."
    )


def capacity_full(max_active: int) -> str:
    return (
        f"⚠️ You already have {max_active} active orders. "
        "Finish one of them before accepting new requests."
    )


# --- couriers ---

def courier_offer(
    order_id: str,
    supplier_name: str,
    supplier_address: str,
    buyer_address: str,
    distance_km: float,
    shipping_cost: int,
    product_name: str,
    weight_kg: float,
) -> str:
    ref = short_ref(order_id)
    return (
        f"🚚 *Delivery job #{ref}*\n\n"
        f"From: {supplier_name} ({supplier_address})\n"
        f"To: {buyer_address}\n"
        f"Distance: {distance_km:.1f} km\n"
        f"Fee: {rupiah_to_display(shipping_cost)}\n"
        f"Goods: {product_name} (~{weight_kg:g} kg)\n\n"
        f'Reply "AMBIL {ref}" to take this job or "TIDAK {ref}" to pass.'
    )


def courier_assigned(order_id: str, supplier_name: str, supplier_phone: str, address: str) -> str:
    return (
        f"📦 Job #{short_ref(order_id)} is yours.\n"
        f"Pickup: {address}\nContact: {supplier_name} ({supplier_phone})\n"
        "Wait for the payment notice before picking up."
    )


def courier_pickup_ready(order_id: str) -> str:
    ref = short_ref(order_id)
    return (
        f"✅ Order #{ref} is paid and ready for pickup.\n"
        f'After pickup, share your live location or send "LOKASI#lat#lng".'
    )


def courier_order_completed(order_id: str, amount: int) -> str:
    return (
        f"✅ Delivery #{short_ref(order_id)} confirmed. "
        f"{rupiah_to_display(amount)} has been added to your balance."
    )


# --- buyers ---

def buyer_no_supplier(product_name: str, radius_km: float) -> str:
    return (
        f"😔 No supplier within {radius_km:g} km can supply {product_name} right now. "
        "Please try again later."
    )


def buyer_supplier_offer(order_id: str, supplier_name: str, offered_price: int) -> str:
    ref = short_ref(order_id)
    return (
        f"📩 {supplier_name} can supply order #{ref} for "
        f"{rupiah_to_display(offered_price)} (delivered by the supplier).\n"
        f'Reply "SETUJU {ref}" to accept or "TOLAK {ref}" to look for another supplier.'
    )


def buyer_payment_request(order_id: str, supplier_name: str, total_amount: int) -> str:
    return (
        f"✅ {supplier_name} accepted order #{short_ref(order_id)}.\n"
        f"Total to pay: {rupiah_to_display(total_amount)}\n"
        f"Pay here: {payment_url(order_id)}"
    )


def buyer_searching_again(order_id: str) -> str:
    return f"🔎 Looking for another supplier for order #{short_ref(order_id)}."


def buyer_shipping(order_id: str) -> str:
    return (
        f"🚚 Order #{short_ref(order_id)} is on its way.\n"
        f"Track it here: {tracking_url(order_id)}"
    )


def buyer_delivered(order_id: str, delivery_token: str) -> str:
    return (
        f"📦 Order #{short_ref(order_id)} has been delivered.\n"
        f"Confirm receipt or report a problem: {confirm_url(order_id, delivery_token)}"
    )


def buyer_dispute_received(order_id: str) -> str:
    return (
        f"📝 Your report for order #{short_ref(order_id)} was received. "
        "Funds stay in escrow until our team reviews it."
    )


def dispute_resolved(order_id: str, outcome: str) -> str:
    return f"⚖️ The dispute on order #{short_ref(order_id)} was resolved: {outcome}."


# --- shared ---

def order_cancelled(order_id: str) -> str:
    return f"❌ Order #{short_ref(order_id)} was cancelled by the buyer."


def job_already_taken(order_id: str) -> str:
    return f"🙏 Order #{short_ref(order_id)} has already been taken. Thank you!"


def response_recorded(order_id: str) -> str:
    return f"👍 Noted, you passed on order #{short_ref(order_id)}."


def help_text(role: str) -> str:
    commands = {
        "supplier": (
            "SANGGUP KIRIM <ref> - accept and deliver yourself\n"
            "SANGGUP AMBIL <ref> - accept, courier picks up\n"
            "SANGGUP#<ref>#<price> - accept at your price\n"
            "TIDAK <ref> - decline\n"
            "KIRIM SENDIRI <ref> - deliver yourself when no courier is found\n"
            "CARI KURIR <ref> - search couriers again"
        ),
        "courier": "AMBIL <ref> - take a delivery job\nTIDAK <ref> - pass on a job",
        "buyer": (
            "SETUJU <ref> - accept a supplier's price\n"
            "TOLAK <ref> - reject it and keep searching\n"
            "BATAL <ref> - cancel an order"
        ),
    }
    body = commands.get(role, "")
    return (
        "ℹ️ *Commands*\n"
        f"{body}\n"
        "LOKASI#<lat>#<lng> - update your location\n"
        "BANTUAN - show this help"
    )


def unknown_command() -> str:
    return 'Sorry, I did not understand that. Send "BANTUAN" for the list of commands.'


def not_registered() -> str:
    return "This number is not registered yet. Please contact our team to sign up."


def location_updated() -> str:
    return "📍 Location updated."


# --- webhook replies ---

def supplier_accepted(order_id: str, status: str) -> str:
    next_step = {
        "waiting_buyer_approval": "Your price has been sent to the buyer for approval.",
        "waiting_payment": "The buyer has been asked to pay. Wait for the payment notice.",
        "negotiating_courier": "We are looking for a courier to pick up the goods.",
        "stuck_no_courier": "No courier is available yet; see the next message.",
    }.get(status, "")
    return f"👍 You accepted order #{short_ref(order_id)}. {next_step}".rstrip()


def courier_search_restarted(order_id: str) -> str:
    return f"🔎 Searching couriers again for order #{short_ref(order_id)}."


def order_not_found(ref: str | None) -> str:
    if ref:
        return f'❌ No open order matches "{ref}".'
    return "❌ You have no open order this command applies to."


def ambiguous_reference() -> str:
    return (
        "❌ More than one order matches. Add the order reference, "
        'for example "TIDAK 1a2b3c4d".'
    )


def action_not_possible(order_id: str, status: str) -> str:
    return (
        f"❌ That is not possible for order #{short_ref(order_id)} "
        f"right now (status: {status.replace('_', ' ')})."
    )


def location_format_help() -> str:
    return "❌ Wrong location format. Use: LOKASI#-6.2088#106.8456"
