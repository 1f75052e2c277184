"""Time-window filtering and dashboard aggregation."""
