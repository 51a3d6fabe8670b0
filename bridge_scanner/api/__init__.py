"""Relay directory access."""

from bridge_scanner.api.onionoo import BASE_URL, DEFAULT_URLS, OnionooClient, build_url_list

__all__ = ["OnionooClient", "BASE_URL", "DEFAULT_URLS", "build_url_list"]
