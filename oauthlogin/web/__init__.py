"""Web host adapter."""
