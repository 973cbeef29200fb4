import pytest

from assignx.core.config import get_settings
from assignx.core.errors import InvalidAmount
from assignx.models.enums import UrgencyTier
from assignx.services.distribution import ShareRates, distribute, suggest_quote, urgency_multiplier


def test_default_split_of_round_quote():
    d = distribute(100_000)
    assert d.worker_payout == 65_000
    assert d.intermediary_commission == 15_000
    assert d.platform_fee == 20_000


def test_rounding_remainder_goes_to_platform():
    d = distribute(99_999)
    assert d.worker_payout == 64_999
    assert d.intermediary_commission == 14_999
    assert d.platform_fee == 20_001
    assert d.worker_payout + d.intermediary_commission + d.platform_fee == 99_999


@pytest.mark.parametrize("amount", [1, 3, 7, 101, 12_345, 9_999_999])
def test_split_always_sums_to_quote(amount):
    d = distribute(amount)
    assert d.worker_payout + d.intermediary_commission + d.platform_fee == amount
    assert min(d.worker_payout, d.intermediary_commission, d.platform_fee) >= 0


def test_custom_rates():
    d = distribute(10_000, ShareRates(worker_bps=7000, intermediary_bps=1000, platform_bps=2000))
    assert (d.worker_payout, d.intermediary_commission, d.platform_fee) == (7000, 1000, 2000)


def test_rates_must_total_100_percent():
    with pytest.raises(ValueError):
        ShareRates(worker_bps=7000, intermediary_bps=2000, platform_bps=2000)
    with pytest.raises(ValueError):
        ShareRates(worker_bps=-1, intermediary_bps=5001, platform_bps=5000)


@pytest.mark.parametrize("bad", [0, -500, 10.5, True])
def test_distribute_rejects_bad_amounts(bad):
    with pytest.raises(InvalidAmount):
        distribute(bad)


def test_suggest_quote_uses_minimum_for_short_jobs():
    assert suggest_quote(10, UrgencyTier.standard) == get_settings().minimum_quote_paise


def test_suggest_quote_scales_with_words_and_urgency():
    s = get_settings()
    base = 4000 * s.price_per_word_paise
    assert suggest_quote(4000, UrgencyTier.standard) == base
    assert suggest_quote(4000, UrgencyTier.h24) == int(base * 1.5)


def test_suggest_quote_rounds_up_without_float_noise():
    # 50_000 × 1.3 must be exactly 65_000, not 65_001
    assert suggest_quote(0, UrgencyTier.h48) == 65_000


def test_suggest_quote_capped_at_max():
    assert suggest_quote(10_000_000, UrgencyTier.h24) == get_settings().max_quote_paise


def test_urgency_multiplier_tiers():
    assert urgency_multiplier("standard") == 1.0
    assert urgency_multiplier(UrgencyTier.h72) == get_settings().urgency_72h_multiplier
    with pytest.raises(ValueError):
        urgency_multiplier("yesterday")
