"""
Database package for the checkout backend.

Exports database initialization, models, and session management.
"""
from .init_db import initialize_database, get_db, get_async_session, create_session_factory
from .models import (
    Base,
    OrderModel,
    OrderNotificationModel,
    PromoCodeModel
)

__all__ = [
    "initialize_database",
    "get_db",
    "get_async_session",
    "create_session_factory",
    "Base",
    "OrderModel",
    "OrderNotificationModel",
    "PromoCodeModel",
]
