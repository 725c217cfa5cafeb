"""
Database engine + session factory (read-only use).

Defaults to SQLite for local dev, Postgres in production. The engine never
writes: schema and rows are owned by the dashboard application.
"""
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from leadintel.config import DATABASE_URL


class Base(DeclarativeBase):
    pass


# Hosted Postgres providers hand out postgres:// but SQLAlchemy 2.x wants postgresql://
url = DATABASE_URL.replace('postgres://', 'postgresql://', 1)

if url.startswith('sqlite'):
    engine = create_engine(url, connect_args={'check_same_thread': False})
else:
    # pool sized for the parallel per-lead fetches in services.lead_data
    engine = create_engine(url, pool_pre_ping=True, pool_size=8, max_overflow=8)

SessionLocal = sessionmaker(bind=engine)


def get_session():
    """Return a new DB session."""
    return SessionLocal()
