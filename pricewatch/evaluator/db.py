"""SQLAlchemy database models for persisted price alerts."""
from sqlalchemy import Boolean, Column, Date, DateTime, Float, Integer, JSON, String, Text, create_engine
from sqlalchemy.orm import declarative_base, sessionmaker

from pricewatch.shared.config import DatabaseSettings, get_settings

Base = declarative_base()


class PriceAlertRow(Base):
    """Price alert table. Nested structures are stored as JSON."""
    __tablename__ = "price_alerts"

    id = Column(String(36), primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    type = Column(String(16), nullable=False, index=True)

    origin = Column(String(120), nullable=True, index=True)
    origin_code = Column(String(8), nullable=True)
    destination = Column(String(120), nullable=True, index=True)
    destination_code = Column(String(8), nullable=True)

    departure_date = Column(Date, nullable=True)
    return_date = Column(Date, nullable=True)
    flexible_dates = Column(Boolean, default=False)
    date_flexibility = Column(Integer, default=3)

    adults = Column(Integer, default=1)
    children = Column(Integer, default=0)
    infants = Column(Integer, default=0)
    cabin_class = Column(String(20), default="economy")

    target_price = Column(Float, nullable=False)
    current_price = Column(Float, nullable=True)
    original_price = Column(Float, nullable=True)
    currency = Column(String(3), default="USD")
    alert_when = Column(JSON, nullable=False)
    notifications = Column(JSON, nullable=False)

    status = Column(String(16), nullable=False, default="active", index=True)
    price_history = Column(JSON, nullable=False)

    triggered_at = Column(DateTime(timezone=True), nullable=True)
    triggered_price = Column(Float, nullable=True)
    notification_sent = Column(Boolean, default=False, index=True)
    notification_sent_at = Column(DateTime(timezone=True), nullable=True)

    expires_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    last_checked_at = Column(DateTime(timezone=True), nullable=True)
    check_count = Column(Integer, default=0)

    notes = Column(Text, default="")
    tags = Column(JSON, nullable=False)


JSON_FIELDS = ("alert_when", "notifications", "price_history", "tags")


def create_db_engine(settings: DatabaseSettings = None):
    """Create SQLAlchemy engine."""
    settings = settings or get_settings().database
    kwargs = {"pool_pre_ping": settings.pool_pre_ping}
    if settings.url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
    return create_engine(settings.url, **kwargs)


def get_session_factory(engine=None):
    """Create session factory."""
    engine = engine or create_db_engine()
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


def init_db(engine=None):
    """Initialize database tables."""
    engine = engine or create_db_engine()
    Base.metadata.create_all(bind=engine)
    return engine
