"""Shared helpers: exceptions, environment parsing, rate limiting."""
