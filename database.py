from sqlalchemy import create_engine, Column, Integer, String, DateTime, Text, JSON
from sqlalchemy.orm import declarative_base, sessionmaker
from datetime import datetime, timezone
from config import settings

def _utcnow():
    return datetime.now(timezone.utc)

connect_args = {"check_same_thread": False} if settings.DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(settings.DATABASE_URL, connect_args=connect_args)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# Database Models
class LocalLeaseCache(Base):
    __tablename__ = "local_lease_cache"

    id = Column(Integer, primary_key=True, index=True)
    license_key = Column(String(255), unique=True, nullable=False, index=True)

    # Lease token as issued by the authority (signed JWT)
    lease = Column(Text, nullable=False)
    expiry = Column(DateTime(timezone=True))
    valid_for = Column(JSON)

    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

class LeaseCheckAttempt(Base):
    __tablename__ = "lease_check_attempts"

    id = Column(Integer, primary_key=True, index=True)
    license_key = Column(String(255), index=True)
    operation = Column(String(50), nullable=False)  # check, obtain, renew, ...
    result = Column(String(50), nullable=False)  # success, rejected, failed
    error_code = Column(String(100))
    error_message = Column(Text)
    client_id = Column(String(255))
    created_at = Column(DateTime(timezone=True), default=_utcnow)

class SystemConfig(Base):
    __tablename__ = "system_config"

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

def init_db(bind=engine):
    Base.metadata.create_all(bind=bind)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
