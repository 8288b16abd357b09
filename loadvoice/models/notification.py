from ..extensions import db
from .base import OrgScopedMixin, TimestampMixin

class Notification(db.Model, OrgScopedMixin, TimestampMixin):
    __tablename__ = "notifications"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), index=True)
    call_id = db.Column(db.Integer, db.ForeignKey("calls.id"))
    type = db.Column(db.String(50))  # call_completed / call_failed
    title = db.Column(db.String(255))
    message = db.Column(db.Text)
    link = db.Column(db.String(255))
    sent_to = db.Column(db.String(255))
    provider_message_id = db.Column(db.String(255))
    sent_at = db.Column(db.DateTime)
    read_at = db.Column(db.DateTime)
