"""
Database Initialization

Creates the SQLite tables for the checkout backend and exposes the async
session dependency used by the FastAPI endpoints.
Tables: orders, order_notifications, promo_codes
"""
import logging
import sqlite3
from pathlib import Path
from typing import AsyncGenerator, Optional

from sqlalchemy import create_engine
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool

from ..config import settings
from .models import Base, PromoCodeModel

logger = logging.getLogger(__name__)


# Promo codes available out of the box in demo mode
DEMO_PROMO_CODES = [
    {
        "code": "SAVE10",
        "is_active": True,
        "min_purchase_amount": 50000,
        "discount_type": "percentage",
        "discount_value": 10,
        "description": "10% off orders from Rp50000",
    },
    {
        "code": "HEMAT5K",
        "is_active": True,
        "min_purchase_amount": None,
        "total_usage_limit": 1000,
        "current_total_usage": 0,
        "discount_type": "fixed_amount",
        "discount_value": 5000,
        "description": "Rp5000 off any order",
    },
]


def create_tables(db_path: Path) -> None:
    """
    Create all tables and enable WAL mode.

    WAL lets notification writes proceed while charge requests read.
    """
    conn = sqlite3.connect(db_path)
    try:
        cursor = conn.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA synchronous=NORMAL")
        conn.commit()
    finally:
        conn.close()

    engine = create_engine(f"sqlite:///{db_path}")
    try:
        Base.metadata.create_all(engine)
    finally:
        engine.dispose()


def seed_demo_promo_codes(db_path: Path) -> int:
    """
    Insert DEMO_PROMO_CODES that are not stored yet.

    Returns:
        Number of promo codes inserted
    """
    engine = create_engine(f"sqlite:///{db_path}")
    inserted = 0
    try:
        with Session(engine) as session:
            for promo in DEMO_PROMO_CODES:
                if session.get(PromoCodeModel, promo["code"]) is None:
                    session.add(PromoCodeModel(**promo))
                    inserted += 1
            session.commit()
    finally:
        engine.dispose()
    return inserted


def initialize_database(database_path: Optional[str] = None, seed_demo_data: bool = False) -> None:
    """
    Initialize the database with all required tables.

    Called during FastAPI startup and from the command line.
    """
    db_path = Path(database_path or settings.database_path)
    logger.info(f"Initializing database at: {db_path}")

    db_path.parent.mkdir(parents=True, exist_ok=True)
    create_tables(db_path)

    if seed_demo_data:
        inserted = seed_demo_promo_codes(db_path)
        logger.info(f"Seeded {inserted} demo promo codes")

    logger.info(f"Database initialized successfully at {db_path}")


# ============================================================================
# SQLAlchemy Async Session Setup for FastAPI
# ============================================================================

def create_session_factory(database_path: str) -> async_sessionmaker:
    """
    Build an async session factory for the given SQLite file.

    NullPool gives every session its own aiosqlite connection, so sessions
    are never shared across event loops.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{database_path}",
        echo=False,
        poolclass=NullPool,
        connect_args={
            "timeout": 30,  # seconds to wait for a write lock
            "check_same_thread": False
        }
    )
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


AsyncSessionLocal = create_session_factory(settings.database_path)


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Dependency for getting async database sessions in FastAPI.

    Usage:
        @router.post("/endpoint")
        async def endpoint(db: AsyncSession = Depends(get_async_session)):
            ...
    """
    async with AsyncSessionLocal() as session:
        yield session


# Alias for FastAPI Depends
get_db = get_async_session


def main():
    """CLI entry point for initializing database."""
    logging.basicConfig(level=getattr(logging, settings.log_level))
    initialize_database(seed_demo_data=settings.demo_mode)


if __name__ == "__main__":
    main()
