from datetime import datetime, timedelta

from sqlalchemy import update

from loadvoice.jobs import process_call as pc
from loadvoice.jobs.maintenance import find_stuck_calls, repair_stuck_calls
from loadvoice.models import Call, CallStatus, Transcript
from conftest import FakeTranscriber


def _age(db, call, minutes):
    db.session.execute(update(Call).where(Call.id == call.id).values(
        updated_at=datetime.utcnow() - timedelta(minutes=minutes)))
    db.session.commit()


def test_only_old_in_flight_calls_are_repaired(db, make_call):
    stuck = make_call(status=CallStatus.EXTRACTING, file_name='stuck.mp3')
    fresh = make_call(status=CallStatus.TRANSCRIBING)
    done = make_call(status=CallStatus.COMPLETED)
    _age(db, stuck, 90)
    _age(db, done, 90)

    assert [c.id for c in find_stuck_calls(60)] == [stuck.id]
    repaired = repair_stuck_calls(60)

    assert len(repaired) == 1
    assert repaired[0]['id'] == stuck.id
    assert repaired[0]['file_name'] == 'stuck.mp3'
    assert 89 <= repaired[0]['minutes_stuck'] <= 91

    db.session.expire_all()
    stuck = db.session.get(Call, stuck.id)
    assert stuck.status == CallStatus.FAILED
    assert stuck.processing_error.startswith('Automatically marked as failed after being stuck for')
    assert db.session.get(Call, fresh.id).status == CallStatus.TRANSCRIBING
    assert db.session.get(Call, done.id).status == CallStatus.COMPLETED


def test_default_age_comes_from_config(app, db, make_call):
    app.config['STUCK_CALL_MINUTES'] = 10
    call = make_call(status=CallStatus.PROCESSING)
    _age(db, call, 15)
    assert [c['id'] for c in repair_stuck_calls()] == [call.id]


def test_repaired_call_can_be_triggered_again(db, make_call, transcriber, extractor, use_pipeline):
    use_pipeline(transcriber, extractor)
    call = make_call(status=CallStatus.TRANSCRIBING, processing_attempt=1)
    _age(db, call, 120)
    repair_stuck_calls(60)

    job = pc.trigger_call_processing(call.id)

    assert job.result == CallStatus.COMPLETED
    db.session.expire_all()
    assert db.session.get(Call, call.id).processing_attempt == 2


def test_run_alive_after_repair_stops_writing(db, make_call, extractor, use_pipeline):
    class SlowTranscriber(FakeTranscriber):
        def submit(self, audio_url, **kw):
            repair_stuck_calls(60, now=datetime.utcnow() + timedelta(hours=2))
            return super().submit(audio_url, **kw)

    use_pipeline(SlowTranscriber(), extractor)
    call_id = make_call().id

    job = pc.trigger_call_processing(call_id)

    assert job.result is None
    db.session.expire_all()
    call = db.session.get(Call, call_id)
    assert call.status == CallStatus.FAILED
    assert call.processing_error.startswith('Automatically marked as failed')
    assert Transcript.query.filter_by(call_id=call_id).count() == 0
