from ..extensions import db
from .base import OrgScopedMixin, TimestampMixin


class CallStatus:
    UPLOADED = "uploaded"
    PROCESSING = "processing"
    TRANSCRIBING = "transcribing"
    EXTRACTING = "extracting"
    COMPLETED = "completed"
    FAILED = "failed"

    # a (re-)trigger is only accepted from these
    TRIGGERABLE = (UPLOADED, FAILED)
    # an explicit reprocess may also start over from a completed call
    RERUNNABLE = (UPLOADED, FAILED, COMPLETED)
    IN_FLIGHT = (PROCESSING, TRANSCRIBING, EXTRACTING)
    TERMINAL = (COMPLETED, FAILED)


class Call(db.Model, OrgScopedMixin, TimestampMixin):
    __tablename__ = "calls"

    id = db.Column(db.Integer, primary_key=True)
    # OrgScopedMixin: org_id
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # upload
    file_name = db.Column(db.String(255))
    storage_url = db.Column(db.String(512))  # file://, s3:// or https:// audio location
    customer_name = db.Column(db.String(255))
    call_type = db.Column(db.String(50))
    template_id = db.Column(db.Integer, db.ForeignKey("custom_templates.id"), nullable=True)
    trim_start = db.Column(db.Float)  # seconds
    trim_end = db.Column(db.Float)

    # processing state: uploaded -> processing -> transcribing -> extracting -> completed | failed
    status = db.Column(db.String(20), nullable=False, default=CallStatus.UPLOADED, index=True)
    processing_progress = db.Column(db.Integer, nullable=False, default=0)
    processing_message = db.Column(db.String(255))
    processing_error = db.Column(db.Text)
    # bumped by every accepted trigger; writes from older runs are ignored
    processing_attempt = db.Column(db.Integer, nullable=False, default=0)
    processing_started_at = db.Column(db.DateTime)
    processed_at = db.Column(db.DateTime)

    # filled in when a run completes
    duration_sec = db.Column(db.Integer)
    duration_minutes = db.Column(db.Integer)
    customer_company = db.Column(db.String(255))
    next_steps = db.Column(db.Text)
    sentiment_type = db.Column(db.String(20))
    sentiment_score = db.Column(db.Integer)  # 0-100 from utterance sentiment

    transcript = db.relationship("Transcript", uselist=False, cascade="all, delete-orphan", backref="call")
    fields = db.relationship("ExtractedField", cascade="all, delete-orphan", backref="call", lazy="dynamic")
    template = db.relationship("CustomTemplate", lazy="joined")
    user = db.relationship("User")

    def status_payload(self):
        payload = {
            "status": self.status,
            "processing_progress": self.processing_progress or 0,
            "processing_message": self.processing_message,
        }
        if self.status == CallStatus.FAILED and self.processing_error:
            payload["error"] = self.processing_error
        return payload

    def __repr__(self) -> str:
        return f"<Call id={self.id} status={self.status!r} progress={self.processing_progress}>"
