from ..extensions import db
from .base import OrgScopedMixin, TimestampMixin

class Transcript(db.Model, OrgScopedMixin, TimestampMixin):
    __tablename__ = "transcripts"
    id = db.Column(db.Integer, primary_key=True)
    # one transcript per call; a re-run deletes and replaces it
    call_id = db.Column(db.Integer, db.ForeignKey("calls.id"), nullable=False, unique=True)
    provider_transcript_id = db.Column(db.String(64))
    text = db.Column(db.Text, nullable=False, default='')
    lang = db.Column(db.String(10), default="en")
    # [{speaker, text, start, end, confidence, sentiment?}] as returned by the provider
    utterances = db.Column(db.JSON, nullable=True)
    words = db.Column(db.JSON, nullable=True)
    # speaker id -> role ("Broker", "Carrier", ...)
    speaker_mapping = db.Column(db.JSON, nullable=True)
    speakers_count = db.Column(db.Integer, default=0)
    confidence_score = db.Column(db.Float, default=0.0)
    sentiment_overall = db.Column(db.String(20))
    audio_duration_ms = db.Column(db.Integer)
    word_count = db.Column(db.Integer, default=0)
