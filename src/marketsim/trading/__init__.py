"""Order validation, execution and admin overrides."""
