"""Hash-chained, append-only incident ledger."""
