"""Contact extraction: per-page HTML extraction, social links and the job engine."""
