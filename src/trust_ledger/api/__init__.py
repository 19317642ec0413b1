"""JSON API surface for callers and trade sources."""

from trust_ledger.api.app import create_app

__all__ = ["create_app"]
