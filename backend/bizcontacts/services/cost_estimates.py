"""Completeness statistics and coarse export/refresh sizing for a discovery run.

These are estimates for the user, computed once per run. No billing happens here.
"""

import math

from bizcontacts.schemas.discovery import (
    CompletenessStats,
    CostEstimates,
    ExportEstimate,
    RefreshEstimate,
    RefreshEstimates,
)

# (export size, price in EUR)
EXPORT_PRICING = [
    (50, 9),
    (100, 15),
    (500, 49),
    (1000, 79),
    (2000, 129),
]

REFRESH_INCOMPLETE_ONLY_EUR = 0.05
REFRESH_FULL_EUR = 0.03

# Share of businesses assumed to be missing website, email or phone
INCOMPLETE_RATE = 0.3


def _percent(part: int, total: int) -> float:
    if total <= 0:
        return 0
    return round(part / total * 100, 2)


def completeness_stats(businesses: list) -> CompletenessStats:
    """Percentages of businesses with a website, email and phone.

    Accepts ORM rows or dicts.
    """
    def has(b, field):
        value = b.get(field) if isinstance(b, dict) else getattr(b, field, None)
        return bool(value)

    total = len(businesses)
    return CompletenessStats(
        with_website_percent=_percent(sum(1 for b in businesses if has(b, "website_url")), total),
        with_email_percent=_percent(sum(1 for b in businesses if has(b, "email")), total),
        with_phone_percent=_percent(sum(1 for b in businesses if has(b, "phone")), total),
    )


def export_estimates(estimated_businesses: int) -> list[ExportEstimate]:
    return [
        ExportEstimate(size=size, price_eur=price)
        for size, price in EXPORT_PRICING
        if size <= estimated_businesses
    ]


def refresh_estimates(estimated_businesses: int, incomplete_rate: float = INCOMPLETE_RATE) -> RefreshEstimates:
    incomplete = math.ceil(estimated_businesses * incomplete_rate)
    return RefreshEstimates(
        incomplete_only=RefreshEstimate(
            price_per_business_eur=REFRESH_INCOMPLETE_ONLY_EUR,
            estimated_total_eur=round(incomplete * REFRESH_INCOMPLETE_ONLY_EUR, 2),
        ),
        full_refresh=RefreshEstimate(
            price_per_business_eur=REFRESH_FULL_EUR,
            estimated_total_eur=round(estimated_businesses * REFRESH_FULL_EUR, 2),
        ),
    )


def build_cost_estimates(businesses: list) -> CostEstimates:
    estimated = len(businesses)
    return CostEstimates(
        estimated_businesses=estimated,
        completeness=completeness_stats(businesses),
        export_estimates=export_estimates(estimated),
        refresh_estimates=refresh_estimates(estimated),
    )
