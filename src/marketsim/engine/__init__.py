"""Live tick engine and leader coordination."""
