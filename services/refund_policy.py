from dataclasses import dataclass, asdict
from datetime import datetime

FULL = "FULL"
HALF = "HALF"
NONE = "NONE"


@dataclass(frozen=True)
class RefundQuote:
    band: str
    refund_paise: int

    def to_dict(self):
        return asdict(self)


def compute_refund(
    scheduled_at: datetime,
    now: datetime,
    price_paise: int,
    has_payment: bool = True,
    half_from_hours: int = 24,
    full_from_hours: int = 48,
) -> RefundQuote:
    """
    Map cancellation lead time to a refund band.

    Lead time >= 48h refunds in full, >= 24h refunds half (floored), anything
    shorter refunds nothing. Each boundary belongs to the higher band. Without
    a gateway payment (credit bookings) the band is still reported but the
    amount is always zero.
    """
    hours = (scheduled_at - now).total_seconds() / 3600
    price = max(0, int(price_paise or 0))

    if hours >= full_from_hours:
        band, amount = FULL, price
    elif hours >= half_from_hours:
        band, amount = HALF, price // 2
    else:
        band, amount = NONE, 0

    if not has_payment:
        amount = 0
    return RefundQuote(band=band, refund_paise=amount)
