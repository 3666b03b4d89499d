from __future__ import annotations

from ..extensions import db
from bookmarket.time_utils import to_utc_z


DELIVERY_APPLIED = "APPLIED"
DELIVERY_DUPLICATE = "DUPLICATE"
DELIVERY_MISS = "MISS"
DELIVERY_REJECTED = "REJECTED"
DELIVERY_FAILED = "FAILED"
DELIVERY_IGNORED = "IGNORED"

DELIVERY_OUTCOMES = (
    DELIVERY_APPLIED,
    DELIVERY_DUPLICATE,
    DELIVERY_MISS,
    DELIVERY_REJECTED,
    DELIVERY_FAILED,
    DELIVERY_IGNORED,
)

# Outcomes an operator has to follow up on
DELIVERY_NEEDS_ATTENTION = (DELIVERY_REJECTED, DELIVERY_FAILED)


class WebhookDelivery(db.Model):
    """
    Append-only record of each payment notification handed to the reconciler
    and what was decided about it.

    Written in its own commit after the transition attempt; a failed
    transition never rolls back the delivery record.
    """
    __tablename__ = "webhook_deliveries"
    __table_args__ = (
        db.Index("ix_webhook_deliveries_outcome_received", "outcome", "received_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    provider_event_id = db.Column(db.String(255), nullable=True, index=True)
    event_type = db.Column(db.String(64), nullable=False)
    lookup_key = db.Column(db.String(255), nullable=True, index=True)
    purchase_id = db.Column(db.Integer, db.ForeignKey("purchases.id", ondelete="SET NULL"), nullable=True, index=True)

    # one of DELIVERY_OUTCOMES
    outcome = db.Column(db.String(16), nullable=False)
    detail = db.Column(db.Text, nullable=True)

    received_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "provider_event_id": self.provider_event_id,
            "event_type": self.event_type,
            "lookup_key": self.lookup_key,
            "purchase_id": self.purchase_id,
            "outcome": self.outcome,
            "detail": self.detail,
            "received_at": to_utc_z(self.received_at),
        }
