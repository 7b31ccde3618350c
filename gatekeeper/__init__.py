"""Gatekeeper: request-gating security middleware for a web API backend."""
