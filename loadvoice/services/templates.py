from ..extensions import db
from ..models.organization import OrganizationMember
from ..models.template import CustomTemplate
from ..exceptions import TemplateNotFound, TemplateUnauthorized, TemplateEmpty


def user_can_use_template(user_id, template):
    """Owner, or a member of the organization the template is shared with."""
    if template.user_id == user_id:
        return True
    if template.organization_id:
        return OrganizationMember.is_member(user_id, template.organization_id)
    return False


def authorized_template_for_call(call):
    """Return the call's template once it exists and the call's user may use it.

    Returns None when no template is attached. Raises TemplateNotFound or
    TemplateUnauthorized; callers treat both as "core fields only".
    """
    if not call.template_id:
        return None
    template = db.session.get(CustomTemplate, call.template_id)
    if template is None:
        raise TemplateNotFound(call.id, call.template_id)
    if not user_can_use_template(call.user_id, template):
        raise TemplateUnauthorized(call.id, template.id, call.user_id)
    return template


def template_field_definitions(call, template):
    """Ordered field rows of the template; raises TemplateEmpty when there are none."""
    fields = sorted(template.fields, key=lambda f: (f.sort_order or 0, f.id or 0))
    if not fields:
        raise TemplateEmpty(call.id, template.id)
    return fields


def resolve_template_field(fields, result):
    """Match an extractor result to its template field by id, then by name."""
    field_id = result.get('field_id')
    if field_id is not None:
        for f in fields:
            if str(f.id) == str(field_id):
                return f
    name = result.get('field_name') or result.get('name')
    if name:
        for f in fields:
            if f.field_name == name:
                return f
        lowered = name.strip().lower()
        for f in fields:
            if f.field_name.strip().lower() == lowered:
                return f
    return None
