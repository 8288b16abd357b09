from datetime import datetime
from flask import current_app
from ..extensions import db
from ..services.mail import mail_enabled, send_email
from ..models.call import Call
from ..models.notification import Notification


def _call_link(call):
    base = (current_app.config.get('APP_BASE_URL') or '').rstrip('/')
    return f"{base}/calls/{call.id}"


def _label(call):
    return call.customer_name or call.file_name or f"Call #{call.id}"


def notify_call_completed(call_id: int):
    call = db.session.get(Call, call_id)
    if call is None:
        return None
    # company the extractor found wins over the name typed at upload
    who = call.customer_company or call.customer_name or 'customer'
    n = Notification(org_id=call.org_id, user_id=call.user_id, call_id=call.id,
                     type="call_completed",
                     title="Call processed successfully",
                     message=f"Your call with {who} is ready to review.",
                     link=_call_link(call))
    db.session.add(n); db.session.commit()
    return n.id


def notify_call_failed(call_id: int, error: str):
    """Record a failure notification and mail the call's owner when mail is configured."""
    call = db.session.get(Call, call_id)
    if call is None:
        return None
    title = "Call processing failed"
    message = f"We couldn't process {_label(call)}: {error}"
    n = Notification(org_id=call.org_id, user_id=call.user_id, call_id=call.id,
                     type="call_failed", title=title, message=message, link=_call_link(call))

    user = call.user
    if user is not None and user.email and mail_enabled() and current_app.config.get('NOTIFY_EMAIL_ON_FAILURE'):
        html = (f"<p>{message}</p>"
                f"<p>You can retry processing from the <a href=\"{n.link}\">call page</a>.</p>")
        try:
            status, message_id = send_email(user.email, title, html)
            n.sent_to = user.email
            n.provider_message_id = message_id
            n.sent_at = datetime.utcnow()
            current_app.logger.info('Failure mail for call %s sent to %s (status %s)', call.id, user.email, status)
        except Exception:
            current_app.logger.exception('Failure mail for call %s could not be sent', call.id)

    db.session.add(n); db.session.commit()
    return n.id
