"""Shared helpers: logging, errors and pt-BR value parsing."""
