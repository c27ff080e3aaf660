"""
Database models and schema for the audit log
"""
from sqlalchemy import create_engine, Column, String, DateTime, JSON
from sqlalchemy.orm import declarative_base, sessionmaker
from datetime import datetime, timezone
import uuid

from core.config.config import config

Base = declarative_base()

_engines = {}
_session_factories = {}


def _utcnow():
    return datetime.now(timezone.utc)


class AuditLog(Base):
    """Audit log table"""
    __tablename__ = 'audit_logs'

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    invoice_id = Column(String, nullable=False)
    node_name = Column(String)
    action = Column(String)
    result = Column(String)
    details = Column(JSON)
    timestamp = Column(DateTime, default=_utcnow)

    def __repr__(self):
        return f"<AuditLog(invoice={self.invoice_id}, node={self.node_name}, result={self.result})>"


def get_engine(database_url: str = None):
    """Get (and cache) the engine for a database URL"""
    database_url = database_url or config.DATABASE_URL
    engine = _engines.get(database_url)
    if engine is None:
        engine = create_engine(database_url)
        Base.metadata.create_all(engine)
        _engines[database_url] = engine
    return engine


# Database initialization
def init_db(database_url: str = None):
    """Initialize database and create tables"""
    return get_engine(database_url)


def get_session(database_url: str = None):
    """Get database session"""
    engine = get_engine(database_url)
    Session = _session_factories.get(engine)
    if Session is None:
        Session = sessionmaker(bind=engine)
        _session_factories[engine] = Session
    return Session()
