from flask import Blueprint
from ..jobs.process_call import trigger_call_processing
from ..utils.decorators import pipeline_token_required
from . import TRIGGER_ERRORS, pipeline_error_response, trigger_response

bp = Blueprint("webhooks", __name__)


@bp.post("/webhooks/calls/<int:call_id>/process")
@pipeline_token_required
def process_call_webhook(call_id):
    # internal callers are not org-scoped
    try:
        job = trigger_call_processing(call_id)
    except TRIGGER_ERRORS as e:
        return pipeline_error_response(e)
    return trigger_response(call_id, job)
