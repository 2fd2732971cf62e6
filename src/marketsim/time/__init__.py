"""Exchange session calendar."""
