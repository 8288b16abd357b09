from ..extensions import db
from .base import TimestampMixin


class CustomTemplate(db.Model, TimestampMixin):
    __tablename__ = "custom_templates"

    id = db.Column(db.Integer, primary_key=True)
    # owner; the template may additionally be shared with an organization
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)
    name = db.Column(db.String(120), nullable=False)
    description = db.Column(db.Text)

    fields = db.relationship(
        "TemplateField",
        order_by="TemplateField.sort_order",
        cascade="all, delete-orphan",
        backref="template",
    )

    def __repr__(self) -> str:
        return f"<CustomTemplate id={self.id} name={self.name!r}>"


class TemplateField(db.Model, TimestampMixin):
    __tablename__ = "template_fields"

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(db.Integer, db.ForeignKey("custom_templates.id"), nullable=False, index=True)
    field_name = db.Column(db.String(120), nullable=False)
    field_type = db.Column(db.String(20), default="text")
    description = db.Column(db.Text)
    options = db.Column(db.JSON)  # choices for select fields
    is_required = db.Column(db.Boolean, default=False)
    sort_order = db.Column(db.Integer, default=0)

    def definition(self):
        """Field definition as handed to the extraction provider."""
        d = {"id": self.id, "name": self.field_name, "type": self.field_type or "text"}
        if self.description:
            d["description"] = self.description
        if self.options:
            d["options"] = list(self.options)
        if self.is_required:
            d["required"] = True
        return d
