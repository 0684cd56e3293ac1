"""Integer arithmetic utilities for rupiah amounts.

All prices, fees and balances are int (whole rupiah). No float, no Decimal
in stored amounts; floats only appear as distances before rounding.
"""


def rupiah_to_display(amount: int) -> str:
    """Format with dot thousands separators: 105000 -> 'Rp 105.000', -5000 -> '-Rp 5.000'."""
    body = f"{abs(amount):,}".replace(",", ".")
    return f"-Rp {body}" if amount < 0 else f"Rp {body}"


def calculate_service_fee(buyer_price: int, fee_rate_bps: int) -> int:
    """Platform fee, rounded half-up to the nearest rupiah.

    fee = round(buyer_price * fee_rate_bps / 10000)
    Using integer arithmetic: (a * bps + 5000) // 10000
    """
    if buyer_price <= 0 or fee_rate_bps <= 0:
        return 0
    return (buyer_price * fee_rate_bps + 5000) // 10000


def calculate_shipping_cost(distance_km: float, rate_per_km: int, minimum: int) -> int:
    """Courier fee: distance * rate, rounded half-up, never below the minimum."""
    if distance_km < 0:
        raise ValueError(f"distance_km must be >= 0, got {distance_km}")
    return max(minimum, int(distance_km * rate_per_km + 0.5))


def calculate_total(buyer_price: int, service_fee: int, shipping_cost: int) -> int:
    return buyer_price + service_fee + shipping_cost
