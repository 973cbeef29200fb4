from __future__ import annotations

from decimal import ROUND_CEILING, Decimal
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from assignx.core.config import Settings, get_settings
from assignx.core.errors import InvalidAmount
from assignx.models.enums import UrgencyTier

BPS = 10_000


@dataclass(frozen=True)
class ShareRates:
    worker_bps: int
    intermediary_bps: int
    platform_bps: int

    def __post_init__(self):
        if min(self.worker_bps, self.intermediary_bps, self.platform_bps) < 0:
            raise ValueError("Share rates must be non-negative.")
        if self.worker_bps + self.intermediary_bps + self.platform_bps != BPS:
            raise ValueError("Share rates must total 10000 bps.")

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ShareRates":
        s = settings or get_settings()
        return cls(
            worker_bps=s.worker_share_bps,
            intermediary_bps=s.intermediary_share_bps,
            platform_bps=s.platform_share_bps,
        )


@dataclass(frozen=True)
class Distribution:
    client_quote: int
    worker_payout: int
    intermediary_commission: int
    platform_fee: int

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def distribute(client_quote: int, rates: Optional[ShareRates] = None) -> Distribution:
    """
    Split a quote (integer paise) three ways.

    Worker and intermediary shares are floored; the platform takes whatever is
    left, so the three parts always add back up to the quote exactly.
    """
    if isinstance(client_quote, bool) or not isinstance(client_quote, int):
        raise InvalidAmount("Quote must be an integer number of paise.")
    if client_quote <= 0:
        raise InvalidAmount("Quote must be positive.")

    rates = rates or ShareRates.from_settings()
    worker = client_quote * rates.worker_bps // BPS
    intermediary = client_quote * rates.intermediary_bps // BPS
    platform = client_quote - worker - intermediary

    return Distribution(
        client_quote=client_quote,
        worker_payout=worker,
        intermediary_commission=intermediary,
        platform_fee=platform,
    )


def urgency_multiplier(urgency: UrgencyTier | str, settings: Optional[Settings] = None) -> float:
    s = settings or get_settings()
    tier = UrgencyTier(urgency)
    if tier == UrgencyTier.h24:
        return s.urgency_24h_multiplier
    if tier == UrgencyTier.h48:
        return s.urgency_48h_multiplier
    if tier == UrgencyTier.h72:
        return s.urgency_72h_multiplier
    return 1.0


def suggest_quote(word_count: int, urgency: UrgencyTier | str, settings: Optional[Settings] = None) -> int:
    """
    base = max(words × per-word rate, minimum); result = ceil(base × urgency).
    Advisory only: the intermediary still issues the actual amount.
    """
    s = settings or get_settings()
    if word_count < 0:
        raise InvalidAmount("word_count cannot be negative.")
    base = max(word_count * s.price_per_word_paise, s.minimum_quote_paise)
    scaled = (Decimal(base) * Decimal(str(urgency_multiplier(urgency, s)))).to_integral_value(rounding=ROUND_CEILING)
    return min(int(scaled), s.max_quote_paise)
