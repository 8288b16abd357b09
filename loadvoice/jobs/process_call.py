"""Call processing: uploaded audio to a fully extracted CRM record.

`trigger_call_processing` claims a call and enqueues `process_call`, which
runs `CallPipeline` inside a worker. Every write a run makes to its call is
scoped to the attempt number it claimed, so a superseded run can never
overwrite the state of a newer one.
"""

import math
import time
from datetime import datetime

from flask import current_app, has_app_context
from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db, rq
from ..models.call import Call, CallStatus
from ..models.extracted_field import ExtractedField
from ..models.transcript import Transcript
from ..services import templates as template_service
from ..services.extraction import OpenAIExtractor, core_field_values, normalize_extraction
from ..services.speaker_roles import map_speakers_to_roles, mean_confidence, sentiment_from_utterances
from ..services.transcription import AssemblyAITranscriber
from ..services.usage import record_call_usage
from ..utils.timing import Deadline
from ..exceptions import (
    CallBusy, CallNotFound, ExtractionFailure, MissingAudio, PersistenceFailure,
    PipelineError, PipelineTimeout, StaleRun, TemplateError, TemplateUnauthorized,
    TranscriptionFailure,
)
from .notify import notify_call_completed, notify_call_failed

# seconds RQ waits past the pipeline deadline before killing the job
JOB_TIMEOUT_GRACE = 60

TRANSCRIPTION_BAND = 50
CORE_FIELD_CONFIDENCE = 0.9
TEMPLATE_FIELD_CONFIDENCE = 0.85

MSG_PREPARING = 'Preparing audio file for transcription...'
MSG_TRANSCRIBING = 'Submitting audio for transcription...'
MSG_EXTRACTING = 'Analyzing conversation with AI to extract insights...'
MSG_SAVING = 'Saving extracted data to database...'
MSG_FINALIZING = 'Finalizing call record...'
MSG_COMPLETED = 'All done! Your call is ready to review.'
MSG_FAILED = 'Processing failed'


def _commit(call_id=None):
    try:
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        raise PersistenceFailure(f'Database write failed: {e.__class__.__name__}', call_id, e) from e


def claim_call(call_id: int, org_id: int = None, rerun: bool = False) -> int:
    """Move a call into `processing` and return the attempt number now owning it.

    The status flip is a compare-and-swap on (status, processing_attempt), so
    two triggers racing for the same call cannot both win. A completed call is
    only claimed when `rerun` asks for it explicitly.
    """
    allowed = CallStatus.RERUNNABLE if rerun else CallStatus.TRIGGERABLE
    call = db.session.get(Call, call_id)
    if call is None or (org_id is not None and call.org_id != org_id):
        raise CallNotFound(call_id)
    if call.status not in allowed:
        raise CallBusy(call_id, call.status)

    seen = call.processing_attempt or 0
    previous = call.status
    claimable = (Call.id == call_id, Call.status.in_(allowed), Call.processing_attempt == seen)

    if not call.storage_url:
        db.session.execute(
            update(Call).where(*claimable)
            .values(status=CallStatus.FAILED, processing_error=MissingAudio.MESSAGE, processing_message=MSG_FAILED)
            .execution_options(synchronize_session=False)
        )
        _commit(call_id)
        current_app.logger.error('Call %s has no audio URL, marked failed', call_id)
        raise MissingAudio(call_id)

    result = db.session.execute(
        update(Call).where(*claimable)
        .values(
            status=CallStatus.PROCESSING,
            processing_progress=0,
            processing_message=MSG_PREPARING,
            processing_error=None,
            processing_attempt=seen + 1,
            processing_started_at=datetime.utcnow(),
        )
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        db.session.rollback()
        db.session.refresh(call)
        raise CallBusy(call_id, call.status)
    _commit(call_id)
    current_app.logger.info('Call %s claimed for %s (attempt %s)', call_id,
                            'reprocessing' if previous == CallStatus.COMPLETED else 'processing', seen + 1)
    return seen + 1


def trigger_call_processing(call_id: int, org_id: int = None, rerun: bool = False):
    """Claim a call and hand it to a worker. Returns the RQ job (or a SyncJob)."""
    attempt = claim_call(call_id, org_id, rerun=rerun)
    timeout = int(current_app.config.get('PIPELINE_TIMEOUT_SECONDS', 300)) + JOB_TIMEOUT_GRACE
    return rq.enqueue(process_call, call_id, attempt, job_timeout=timeout)


class RunState:
    def __init__(self, call_id, attempt, deadline):
        self.call_id = call_id
        self.attempt = attempt
        self.deadline = deadline
        self.progress = 0


class CallPipeline:
    """Transcribe, extract and persist one call.

    The transcriber and extractor are injected: anything with the
    `submit(...)` / `extract(...)` / `extract_fields(...)` methods of
    AssemblyAITranscriber and OpenAIExtractor will do.
    """

    def __init__(self, transcriber, extractor, timeout_seconds=300, clock=time.monotonic):
        self.transcriber = transcriber
        self.extractor = extractor
        self.timeout_seconds = timeout_seconds
        self._clock = clock

    # -- attempt-scoped writes -------------------------------------------

    def _write(self, run, **values):
        """Stage an update of the call, valid only while this run owns it."""
        if 'processing_progress' in values:
            values['processing_progress'] = max(run.progress, int(values['processing_progress']))
        stmt = (
            update(Call)
            .where(
                Call.id == run.call_id,
                Call.processing_attempt == run.attempt,
                Call.status.in_(CallStatus.IN_FLIGHT),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        try:
            result = db.session.execute(stmt)
        except SQLAlchemyError as e:
            db.session.rollback()
            raise PersistenceFailure(f'Database write failed: {e.__class__.__name__}', run.call_id, e) from e
        if result.rowcount == 0:
            db.session.rollback()
            raise StaleRun(run.call_id, run.attempt)
        if 'processing_progress' in values:
            run.progress = values['processing_progress']

    def _set(self, run, **values):
        self._write(run, **values)
        _commit(run.call_id)

    def _progress_callback(self, run):
        def on_progress(percent, message):
            run.deadline.check('transcription')
            try:
                percent = float(percent)
            except (TypeError, ValueError):
                percent = 0.0
            scaled = int(round(max(0.0, min(100.0, percent)) * TRANSCRIPTION_BAND / 100))
            self._set(run, processing_progress=scaled,
                      processing_message=message or f'Transcribing audio... {int(percent)}%')
        return on_progress

    # -- entrypoint ------------------------------------------------------

    def run(self, call_id: int, attempt: int):
        """Run the pipeline for one claimed attempt.

        Failures are recorded on the call (status `failed`) rather than
        raised, so callers running the job inline get a normal return.
        Returns the final status, or None when the attempt was superseded.
        """
        run = RunState(call_id, attempt, Deadline(self.timeout_seconds, call_id, clock=self._clock))
        try:
            self._execute(run)
            return CallStatus.COMPLETED
        except StaleRun as e:
            db.session.rollback()
            current_app.logger.warning('%s; leaving the call untouched', e)
            return None
        except PipelineError as e:
            return self._fail(run, e)
        except Exception as e:
            current_app.logger.exception('Unexpected error processing call %s', call_id)
            return self._fail(run, PipelineError(str(e) or e.__class__.__name__, call_id, e))

    def _fail(self, run, error):
        db.session.rollback()
        message = str(error) or error.__class__.__name__
        stage = getattr(error, 'stage', None)
        current_app.logger.error('Call %s attempt %s failed%s: %s', run.call_id, run.attempt,
                                 f' during {stage}' if stage else '', message)
        try:
            self._set(run, status=CallStatus.FAILED, processing_error=message, processing_message=MSG_FAILED)
        except StaleRun:
            current_app.logger.warning('Call %s attempt %s superseded, failure not recorded', run.call_id, run.attempt)
            return None
        except PersistenceFailure:
            current_app.logger.exception('Could not record failure of call %s', run.call_id)
            return None
        try:
            notify_call_failed(run.call_id, message)
        except Exception:
            db.session.rollback()
            current_app.logger.exception('call_failed notification for call %s failed', run.call_id)
        return CallStatus.FAILED

    def _execute(self, run):
        call = db.session.get(Call, run.call_id)
        if call is None:
            raise StaleRun(run.call_id, run.attempt)
        if call.processing_attempt != run.attempt or call.status not in CallStatus.IN_FLIGHT:
            raise StaleRun(run.call_id, run.attempt)
        if not call.storage_url:
            raise MissingAudio(run.call_id)
        run.progress = call.processing_progress or 0
        audio_url = call.storage_url
        customer_name = call.customer_name
        call_type = call.call_type

        # transcription
        current_app.logger.info('Call %s: transcribing %s', run.call_id, call.file_name or audio_url)
        self._set(run, status=CallStatus.TRANSCRIBING, processing_message=MSG_TRANSCRIBING)
        run.deadline.check('transcription')
        try:
            result = self.transcriber.submit(
                audio_url,
                trim_start=call.trim_start,
                trim_end=call.trim_end,
                on_progress=self._progress_callback(run),
                deadline=run.deadline,
            )
        except PipelineError:
            raise
        except Exception as e:
            raise TranscriptionFailure(f'Transcription failed: {e}', run.call_id, e) from e

        text = result.get('text') or ''
        utterances = result.get('utterances') or []
        duration_ms = result.get('audio_duration_ms')
        roles = map_speakers_to_roles(utterances)
        sentiment_score, utterance_sentiment = sentiment_from_utterances(utterances)
        run.deadline.check('saving transcript')

        Transcript.query.filter_by(call_id=run.call_id).delete(synchronize_session=False)
        db.session.add(Transcript(
            org_id=call.org_id,
            call_id=run.call_id,
            provider_transcript_id=result.get('id'),
            text=text,
            utterances=utterances,
            words=result.get('words') or [],
            speaker_mapping=roles,
            speakers_count=len(roles),
            confidence_score=round(mean_confidence(utterances), 4),
            sentiment_overall=utterance_sentiment,
            audio_duration_ms=duration_ms,
            word_count=len(result.get('words') or []) or len(text.split()),
        ))

        # core extraction
        self._set(run, status=CallStatus.EXTRACTING, processing_progress=TRANSCRIPTION_BAND,
                  processing_message=MSG_EXTRACTING)
        current_app.logger.info('Call %s: transcript saved (%d utterances, roles %s)',
                                run.call_id, len(utterances), roles)
        run.deadline.check('extraction')
        try:
            raw_extraction = self.extractor.extract(
                text, utterances, roles,
                customer_name=customer_name,
                call_type=call_type,
                deadline=run.deadline,
            )
        except PipelineError:
            raise
        except Exception as e:
            raise ExtractionFailure(f'Extraction failed: {e}', run.call_id, e) from e
        extraction = normalize_extraction(raw_extraction)
        run.deadline.check('saving fields')

        source = getattr(self.extractor, 'source', None) or 'extractor'
        ExtractedField.query.filter_by(call_id=run.call_id).delete(synchronize_session=False)
        db.session.add_all([
            ExtractedField(call_id=run.call_id, field_name=name, field_value=value, field_type=field_type,
                           confidence_score=CORE_FIELD_CONFIDENCE, source=source)
            for name, field_type, value in core_field_values(extraction)
        ])
        self._set(run, processing_progress=75, processing_message=MSG_SAVING)

        # template fields
        call = db.session.get(Call, run.call_id)
        template = self._authorized_template(call)
        if template is not None:
            self._set(run, processing_progress=85, processing_message=f'Extracting {template.name} template fields...')
            saved = self._extract_template_fields(run, call, template, text, utterances, roles)
            current_app.logger.info('Call %s: %d template fields from "%s"', run.call_id, saved, template.name)

        # finalize
        run.deadline.check('finalizing')
        values = {
            'processed_at': datetime.utcnow(),
            'sentiment_type': extraction.get('sentiment') or utterance_sentiment,
            'sentiment_score': sentiment_score,
        }
        if duration_ms:
            values['duration_sec'] = int(math.floor(duration_ms / 1000.0 + 0.5))
            values['duration_minutes'] = int(math.ceil(duration_ms / 60000.0))
        company = extraction['raw'].get('customer_company')
        if company:
            values['customer_company'] = company
        next_steps = extraction.get('next_steps') or []
        if next_steps:
            values['next_steps'] = '\n'.join(str(s) for s in next_steps)
        self._set(run, processing_progress=95, processing_message=MSG_FINALIZING, **values)

        # completion and usage land in the same commit
        self._write(run, status=CallStatus.COMPLETED, processing_progress=100,
                    processing_message=MSG_COMPLETED, processing_error=None)
        call = db.session.get(Call, run.call_id)
        record_call_usage(call, duration_ms, source=source)
        _commit(run.call_id)
        current_app.logger.info('Call %s completed (attempt %s, sentiment %s/%s)',
                                run.call_id, run.attempt, values['sentiment_type'], sentiment_score)

        try:
            notify_call_completed(run.call_id)
        except Exception:
            db.session.rollback()
            current_app.logger.exception('call_completed notification for call %s failed', run.call_id)

    # -- template branch -------------------------------------------------

    def _authorized_template(self, call):
        try:
            return template_service.authorized_template_for_call(call)
        except TemplateUnauthorized as e:
            current_app.logger.warning('Call %s: %s, extracting core fields only', call.id, e)
        except TemplateError as e:
            current_app.logger.warning('Call %s: %s, skipping template extraction', call.id, e)
        return None

    def _extract_template_fields(self, run, call, template, text, utterances, roles):
        """Persist one row per extracted template field; returns how many were saved."""
        try:
            fields = template_service.template_field_definitions(call, template)
            results = self.extractor.extract_fields(
                text, utterances, roles, [f.definition() for f in fields], deadline=run.deadline,
            )
        except PipelineTimeout:
            raise
        except TemplateError as e:
            current_app.logger.warning('Call %s: %s, skipping template extraction', run.call_id, e)
            return 0
        except Exception:
            current_app.logger.exception('Template extraction failed for call %s', run.call_id)
            return 0

        rows = []
        seen = set()
        for result in results or []:
            field = template_service.resolve_template_field(fields, result)
            name = field.field_name if field else (result.get('field_name') or result.get('name'))
            if not name:
                continue
            key = field.id if field else name
            if key in seen:
                continue
            seen.add(key)
            confidence = result.get('confidence')
            rows.append(ExtractedField(
                call_id=run.call_id,
                template_id=template.id,
                template_field_id=field.id if field else None,
                field_name=name,
                field_value=result.get('value'),
                field_type=(field.field_type if field else None) or 'text',
                confidence_score=TEMPLATE_FIELD_CONFIDENCE if confidence is None else float(confidence),
                source='template',
            ))
        db.session.add_all(rows)
        return len(rows)


def build_pipeline(config=None):
    config = config or current_app.config
    return CallPipeline(
        transcriber=AssemblyAITranscriber.from_config(config),
        extractor=OpenAIExtractor.from_config(config),
        timeout_seconds=int(config.get('PIPELINE_TIMEOUT_SECONDS', 300)),
    )


def _run_pipeline(call_id: int, attempt: int):
    return build_pipeline().run(call_id, attempt)


def process_call(call_id: int, attempt: int):
    """Public job entrypoint: runs inside a Flask app context so RQ workers
    can call it without the caller setting one up.
    """
    if has_app_context():
        return _run_pipeline(call_id, attempt)
    # lazy import to avoid circular imports at module import time
    from loadvoice import create_app
    app = create_app()
    with app.app_context():
        return _run_pipeline(call_id, attempt)
