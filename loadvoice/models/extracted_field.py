from ..extensions import db
from .base import TimestampMixin


class ExtractedField(db.Model, TimestampMixin):
    """One named CRM attribute extracted from a call.

    Core fields have no template reference; template fields carry both the
    template and the template field they were extracted for.
    """
    __tablename__ = "call_fields"

    id = db.Column(db.Integer, primary_key=True)
    call_id = db.Column(db.Integer, db.ForeignKey("calls.id"), nullable=False, index=True)
    template_id = db.Column(db.Integer, db.ForeignKey("custom_templates.id"), nullable=True)
    template_field_id = db.Column(db.Integer, db.ForeignKey("template_fields.id"), nullable=True)
    field_name = db.Column(db.String(120), nullable=False)
    field_value = db.Column(db.JSON)
    field_type = db.Column(db.String(20), nullable=False, default="text")  # text/json/number/select/custom
    confidence_score = db.Column(db.Float)
    source = db.Column(db.String(50))

    def to_dict(self):
        return {
            "id": self.id,
            "field_name": self.field_name,
            "field_value": self.field_value,
            "field_type": self.field_type,
            "confidence_score": self.confidence_score,
            "source": self.source,
            "template_id": self.template_id,
            "template_field_id": self.template_field_id,
        }

    def __repr__(self) -> str:
        return f"<ExtractedField call_id={self.call_id} {self.field_name}={self.field_value!r}>"
