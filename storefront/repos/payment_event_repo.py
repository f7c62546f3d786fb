# storefront/repos/payment_event_repo.py
from sqlalchemy.orm import Session

from storefront.data.models.processed_event import ProcessedPaymentEventModel


class PaymentEventRepo:
    """Magazyn kluczy idempotencji dla zdarzeń od dostawcy płatności."""

    def __init__(self, db: Session):
        self.db = db

    def is_processed(self, event_id: str) -> bool:
        return self.db.get(ProcessedPaymentEventModel, event_id) is not None

    def mark_processed(self, event_id: str, event_type: str, order_id: int | None) -> bool:
        """
        Zapisuje marker. False = zdarzenie już przetworzone.
        Równoległy insert tego samego event_id kończy się IntegrityError przy flush.
        """
        if self.is_processed(event_id):
            return False

        self.db.add(
            ProcessedPaymentEventModel(
                event_id=event_id,
                event_type=event_type,
                order_id=order_id,
            )
        )
        self.db.flush()
        return True
