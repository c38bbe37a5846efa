"""Shared utilities for caddy-tap."""
