# cafe_engine/domain/pricing.py

from decimal import Decimal, ROUND_HALF_UP


def to_paise(amount) -> int:
    return int((Decimal(str(amount)) * 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def session_price_paise(lines: list[tuple[int, int]], hours: float) -> int:
    """
    lines: (price_per_hour, number_of_terminals) pairs.
    """
    return sum(to_paise(Decimal(str(price)) * count * Decimal(str(hours))) for price, count in lines)
