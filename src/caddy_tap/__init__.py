"""caddy-tap: toggle mitmproxy interception of Caddy routes at runtime."""

__version__ = "0.1.0"
