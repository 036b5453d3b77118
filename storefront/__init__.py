"""Storefront API: request pipeline and resource blueprints."""

from .app_factory import create_app

__all__ = ["create_app"]
