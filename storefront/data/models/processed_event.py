from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, String

from storefront.data.database import Base


class ProcessedPaymentEventModel(Base):
    """Klucz idempotencji: event_id dostawcy płatności -> już przetworzony."""

    __tablename__ = "processed_payment_events"

    event_id = Column(String(255), primary_key=True)
    event_type = Column(String(100), nullable=False)
    order_id = Column(Integer, nullable=True)
    processed_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
