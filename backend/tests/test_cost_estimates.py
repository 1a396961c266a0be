from bizcontacts.services.cost_estimates import build_cost_estimates, completeness_stats


def test_completeness_percentages():
    businesses = [
        {"website_url": "a.gr", "email": "a@a.gr", "phone": None},
        {"website_url": None, "email": None, "phone": "+302103227811"},
        {"website_url": "c.gr", "email": None, "phone": None},
    ]
    stats = completeness_stats(businesses)
    assert stats.with_website_percent == 66.67
    assert stats.with_email_percent == 33.33
    assert stats.with_phone_percent == 33.33


def test_empty_run_has_zero_estimates():
    estimates = build_cost_estimates([])
    assert estimates.estimated_businesses == 0
    assert estimates.completeness.with_email_percent == 0
    assert estimates.export_estimates == []
    assert estimates.refresh_estimates.full_refresh.estimated_total_eur == 0


def test_export_tiers_and_refresh_totals():
    estimates = build_cost_estimates([{"website_url": "x.gr"}] * 120)
    assert [e.size for e in estimates.export_estimates] == [50, 100]
    assert estimates.refresh_estimates.full_refresh.estimated_total_eur == 3.6
    assert estimates.refresh_estimates.incomplete_only.estimated_total_eur == 1.8
