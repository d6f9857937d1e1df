"""HTTP surface for the implant ledger service.

Keep this module import-light: services and tests import `implant_ledger.api.*`
helpers without needing the module-level app, whose creation reads settings.
"""

from __future__ import annotations


def __getattr__(name: str):
    if name == "app":
        from .fastapi_app import app

        return app
    if name == "create_app":
        from .fastapi_app import create_app

        return create_app
    raise AttributeError(name)


__all__ = ["app", "create_app"]
