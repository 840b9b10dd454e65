"""Core orchestration and callback reconciliation."""
