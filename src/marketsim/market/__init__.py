"""Market data model, accounts and the per-client service."""
