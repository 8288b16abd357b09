from flask import jsonify
from ..exceptions import CallBusy, CallNotFound, MissingAudio, PersistenceFailure

ERROR_STATUS = {
    CallNotFound: 404,
    CallBusy: 409,
    MissingAudio: 400,
    PersistenceFailure: 500,
}

TRIGGER_ERRORS = tuple(ERROR_STATUS)


def error_response(message, status, details=None):
    return jsonify({"success": False, "error": message, "details": details}), status


def pipeline_error_response(exc):
    status = ERROR_STATUS.get(type(exc), 500)
    details = {"call_id": exc.call_id}
    if isinstance(exc, CallBusy):
        details["status"] = exc.status
    return error_response(str(exc), status, details)


def trigger_response(call_id, job):
    return jsonify({"success": True, "call_id": call_id, "job_id": getattr(job, "id", None)}), 202
