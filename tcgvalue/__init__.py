"""TCG Value — price resolution and portfolio valuation engine."""
