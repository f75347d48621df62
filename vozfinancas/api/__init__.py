"""Companion REST backend package."""

from vozfinancas.api.app import create_app

__all__ = ["create_app"]
