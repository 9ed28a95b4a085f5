"""API routers."""

from rukun.api.routes import auth, events, inventory, iuran, keuangan, media, settings, users

__all__ = ["auth", "events", "inventory", "iuran", "keuangan", "media", "settings", "users"]
