from datetime import datetime, timedelta
from flask import current_app
from sqlalchemy import update
from ..extensions import db
from ..models.call import Call, CallStatus


def find_stuck_calls(max_age_minutes: int, now=None):
    cutoff = (now or datetime.utcnow()) - timedelta(minutes=max_age_minutes)
    return (Call.query
            .filter(Call.status.in_(CallStatus.IN_FLIGHT), Call.updated_at < cutoff)
            .order_by(Call.updated_at.asc())
            .all())


def repair_stuck_calls(max_age_minutes: int = None, now=None):
    """Mark calls that stopped making progress as failed so they can be re-triggered.

    A run that is still alive for one of these calls will find the call no
    longer in flight on its next write and stop without touching it.
    Returns a list of {id, file_name, minutes_stuck} for the repaired calls.
    """
    if max_age_minutes is None:
        max_age_minutes = int(current_app.config.get('STUCK_CALL_MINUTES', 60))
    now = now or datetime.utcnow()
    repaired = []
    for call in find_stuck_calls(max_age_minutes, now=now):
        minutes_stuck = int(round((now - call.updated_at).total_seconds() / 60))
        result = db.session.execute(
            update(Call)
            .where(Call.id == call.id,
                   Call.status == call.status,
                   Call.processing_attempt == call.processing_attempt)
            .values(status=CallStatus.FAILED,
                    processing_message='Processing failed',
                    processing_error=f'Automatically marked as failed after being stuck for {minutes_stuck} minutes')
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            repaired.append({'id': call.id, 'file_name': call.file_name, 'minutes_stuck': minutes_stuck})
    db.session.commit()
    if repaired:
        current_app.logger.warning('Marked %d stuck calls as failed: %s',
                                   len(repaired), [c['id'] for c in repaired])
    else:
        current_app.logger.info('No stuck calls older than %s minutes', max_age_minutes)
    return repaired
