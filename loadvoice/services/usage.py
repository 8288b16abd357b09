import math
from decimal import Decimal, ROUND_HALF_UP
from flask import current_app
from ..extensions import db
from ..models.usage import UsageRecord

CALL_MINUTES = "call_minutes"


def billable_minutes(duration_ms):
    """Whole minutes billed for a recording: ceiling, 0 when unknown."""
    try:
        ms = float(duration_ms or 0)
    except (TypeError, ValueError):
        return 0
    if ms <= 0:
        return 0
    return int(math.ceil(ms / 60000.0))


def estimate_cost(minutes, rate=None):
    """Estimated charge in account currency, rounded half-up to cents."""
    if rate is None:
        rate = current_app.config.get('USAGE_COST_PER_MINUTE', '0.05')
    cost = Decimal(str(minutes)) * Decimal(str(rate))
    return cost.quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)


def record_call_usage(call, duration_ms, source=None):
    """Stage one usage row for a completed call.

    The row is added to the session but not committed so it lands in the same
    transaction as the call's completion. Returns None when the call was
    already billed, so re-processing a call never charges twice.
    """
    existing = UsageRecord.query.filter_by(call_id=call.id, metric_type=CALL_MINUTES).first()
    if existing:
        current_app.logger.info('Usage already recorded for call %s (%s min), not charging again',
                                call.id, existing.minutes)
        return None

    minutes = billable_minutes(duration_ms)
    rec = UsageRecord(
        org_id=call.org_id,
        user_id=call.user_id,
        call_id=call.id,
        metric_type=CALL_MINUTES,
        minutes=minutes,
        cost=estimate_cost(minutes),
        usage_metadata={
            'duration_ms': duration_ms,
            'attempt': call.processing_attempt,
            'source': source,
        },
    )
    db.session.add(rec)
    return rec


def usage_minutes_for_org(org_id):
    total = db.session.query(db.func.coalesce(db.func.sum(UsageRecord.minutes), 0)).filter(
        UsageRecord.org_id == org_id, UsageRecord.metric_type == CALL_MINUTES
    ).scalar()
    return int(total or 0)
