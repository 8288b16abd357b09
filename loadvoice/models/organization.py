from ..extensions import db
from .base import TimestampMixin

class Organization(db.Model, TimestampMixin):
    __tablename__ = "organizations"
    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)


class OrganizationMember(db.Model, TimestampMixin):
    """Membership of a user in an organization (a user may belong to several)."""
    __tablename__ = "organization_members"
    id = db.Column(db.Integer, primary_key=True)
    org_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    role = db.Column(db.String(50), default="member")

    __table_args__ = (
        db.UniqueConstraint('org_id', 'user_id', name='uq_organization_members_org_user'),
    )

    @classmethod
    def is_member(cls, user_id, org_id):
        if user_id is None or org_id is None:
            return False
        return cls.query.filter_by(user_id=user_id, org_id=org_id).first() is not None
