from flask import Blueprint, request, jsonify, current_app
from flask_login import login_required, current_user
from ..extensions import db
from ..models.call import Call, CallStatus
from ..models.extracted_field import ExtractedField
from ..services.storage import allowed_audio, save_file
from ..services.usage import usage_minutes_for_org
from ..jobs.process_call import trigger_call_processing
from . import TRIGGER_ERRORS, error_response, pipeline_error_response, trigger_response

bp = Blueprint("calls", __name__)

TRUTHY = {"1", "true", "yes", "on"}


def _org_call_or_404(call_id):
    return Call.query.filter_by(id=call_id, org_id=current_user.org_id).first_or_404()


def _trigger(call_id, rerun=False):
    try:
        job = trigger_call_processing(call_id, org_id=current_user.org_id, rerun=rerun)
    except TRIGGER_ERRORS as e:
        return pipeline_error_response(e)
    return trigger_response(call_id, job)


@bp.post("/calls")
@login_required
def upload_call():
    f = request.files.get("file")
    if f is None or f.filename == "" or not allowed_audio(f.filename):
        return error_response("unsupported or empty file", 400)

    call = Call(
        org_id=current_user.org_id,
        user_id=current_user.id,
        file_name=f.filename,
        customer_name=request.form.get("customer_name") or None,
        call_type=request.form.get("call_type") or None,
        template_id=request.form.get("template_id", type=int),
        status=CallStatus.UPLOADED,
    )
    db.session.add(call)
    db.session.flush()
    call.storage_url = save_file(f, prefix=f"org{current_user.org_id}/call{call.id}")
    db.session.commit()
    current_app.logger.info('Call %s uploaded by user %s: %s', call.id, current_user.id, call.file_name)

    if (request.form.get("process") or "").lower() in TRUTHY:
        return _trigger(call.id)
    return jsonify({"success": True, "call_id": call.id, **call.status_payload()}), 201


@bp.post("/calls/<int:call_id>/process")
@login_required
def process_call(call_id):
    return _trigger(call_id)


@bp.post("/calls/<int:call_id>/reprocess")
@login_required
def reprocess_call(call_id):
    """Run the whole pipeline again, also for a completed call; its transcript and fields are replaced."""
    return _trigger(call_id, rerun=True)


@bp.get("/calls/<int:call_id>/status")
@login_required
def call_status(call_id):
    call = _org_call_or_404(call_id)
    return jsonify(call.status_payload())


@bp.post("/calls/<int:call_id>/trim")
@login_required
def trim_call(call_id):
    body = request.get_json(silent=True) or {}
    start, end = body.get("startTime"), body.get("endTime")

    def is_number(v):
        return isinstance(v, (int, float)) and not isinstance(v, bool)

    if not is_number(start) or not is_number(end):
        return error_response("Invalid time range", 400)
    if start < 0 or end <= start:
        return error_response("Invalid time range. End time must be after start time.", 400)
    if end - start < 1:
        return error_response("Selected audio must be at least 1 second long", 400)

    call = Call.query.filter_by(id=call_id, org_id=current_user.org_id).first()
    if call is None:
        return error_response("Call not found", 404)
    if call.status not in CallStatus.TRIGGERABLE:
        return error_response(
            f'Cannot trim audio. Call is in "{call.status}" state. Audio can only be trimmed before transcription.', 400
        )
    if not call.storage_url:
        return error_response("No audio file found for this call", 400)

    call.trim_start = float(start)
    call.trim_end = float(end)
    db.session.commit()
    current_app.logger.info('Call %s trimmed to %.1fs-%.1fs', call.id, call.trim_start, call.trim_end)
    return _trigger(call.id)


@bp.get("/calls/<int:call_id>/fields")
@login_required
def call_fields(call_id):
    call = _org_call_or_404(call_id)
    rows = (ExtractedField.query.filter_by(call_id=call.id)
            .order_by(ExtractedField.template_id.isnot(None), ExtractedField.id)
            .all())
    return jsonify({"call_id": call.id, "status": call.status, "fields": [r.to_dict() for r in rows]})


@bp.get("/usage")
@login_required
def org_usage():
    return jsonify({"org_id": current_user.org_id, "call_minutes": usage_minutes_for_org(current_user.org_id)})
