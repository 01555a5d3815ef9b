"""HTTP API of the setup assistant service."""
