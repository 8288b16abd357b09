from ..extensions import db
from .base import OrgScopedMixin


class UsageRecord(db.Model, OrgScopedMixin):
    """Append-only metering ledger; never updated after insert."""
    __tablename__ = "usage_records"

    id = db.Column(db.Integer, primary_key=True)
    # OrgScopedMixin: org_id
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"))
    call_id = db.Column(db.Integer, db.ForeignKey("calls.id"), nullable=False, index=True)
    metric_type = db.Column(db.String(30), nullable=False, default="call_minutes")
    minutes = db.Column(db.Integer, nullable=False, default=0)
    cost = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    usage_metadata = db.Column(db.JSON)
    created_at = db.Column(db.DateTime, server_default=db.func.now(), nullable=False)

    __table_args__ = (
        # one charge per call and metric, however often the call is re-processed
        db.UniqueConstraint('call_id', 'metric_type', name='uq_usage_records_call_metric'),
    )

    def __repr__(self) -> str:
        return f"<UsageRecord call_id={self.call_id} minutes={self.minutes} cost={self.cost}>"
