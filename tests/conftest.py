import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from flask import g
from flask_login import FlaskLoginClient

from loadvoice import create_app
from loadvoice.extensions import db as _db
from loadvoice.models import (
    Call, CallStatus, CustomTemplate, Organization, OrganizationMember, TemplateField, User,
)


@pytest.fixture
def app(tmp_path):
    app = create_app('config.TestConfig')
    app.config['LOCAL_STORAGE_DIR'] = str(tmp_path / 'storage')
    app.test_client_class = FlaskLoginClient

    @app.teardown_request
    def forget_login(exc):
        # requests reuse the app context held below, so Flask-Login's user cache in g
        # would leak from one client into the next
        g.pop('_login_user', None)

    with app.app_context():
        _db.create_all()
        yield app
        _db.session.remove()
        _db.drop_all()


@pytest.fixture
def db(app):
    return _db


@pytest.fixture
def org(db):
    o = Organization(name='Acme Freight')
    db.session.add(o)
    db.session.commit()
    return o


@pytest.fixture
def other_org(db):
    o = Organization(name='Other Logistics')
    db.session.add(o)
    db.session.commit()
    return o


def make_user(db, org, email, role='member'):
    u = User(org_id=org.id, email=email, full_name=email.split('@')[0].title(), role=role)
    u.set_password('secret')
    db.session.add(u)
    db.session.flush()
    db.session.add(OrganizationMember(org_id=org.id, user_id=u.id, role=role))
    db.session.commit()
    return u


@pytest.fixture
def user(db, org):
    return make_user(db, org, 'broker@acme.test')


@pytest.fixture
def admin(db, org):
    return make_user(db, org, 'admin@acme.test', role='admin')


@pytest.fixture
def outsider(db, other_org):
    return make_user(db, other_org, 'someone@other.test')


@pytest.fixture
def make_call(db, user):
    def _make(**kw):
        kw.setdefault('org_id', user.org_id)
        kw.setdefault('user_id', user.id)
        kw.setdefault('file_name', 'call.mp3')
        kw.setdefault('storage_url', 'https://cdn.example.test/call.mp3')
        kw.setdefault('status', CallStatus.UPLOADED)
        c = Call(**kw)
        db.session.add(c)
        db.session.commit()
        return c
    return _make


@pytest.fixture
def make_template(db):
    def _make(owner, names=('Equipment', 'Rate'), organization_id=None, name='Freight Intake'):
        t = CustomTemplate(user_id=owner.id, organization_id=organization_id, name=name)
        for i, n in enumerate(names):
            t.fields.append(TemplateField(field_name=n, field_type='select' if n == 'Equipment' else 'text',
                                          sort_order=i, options=['Dry Van', 'Reefer'] if n == 'Equipment' else None))
        db.session.add(t)
        db.session.commit()
        return t
    return _make


UTTERANCES = [
    {'speaker': 'A', 'text': 'Thanks for calling, this is Sam with Acme Logistics. I have a load going to Dallas.',
     'start': 0, 'end': 4000, 'confidence': 0.9, 'sentiment': 'POSITIVE'},
    {'speaker': 'B', 'text': 'Sure, what is the rate? I run a reefer and my MC number is 123456.',
     'start': 4100, 'end': 8000, 'confidence': 0.7, 'sentiment': 'NEUTRAL'},
    {'speaker': 'A', 'text': 'All in rate is 2400, pickup tomorrow morning, I will send the rate con.',
     'start': 8100, 'end': 12000, 'confidence': 1.0, 'sentiment': 'POSITIVE'},
]


class FakeTranscriber:
    def __init__(self, result=None, error=None, progress=(0, 10, 40, 70, 100)):
        self.result = result
        self.error = error
        self.progress = progress
        self.calls = []

    def submit(self, audio_url, speakers_expected=None, trim_start=None, trim_end=None,
               on_progress=None, deadline=None):
        self.calls.append({'audio_url': audio_url, 'trim_start': trim_start, 'trim_end': trim_end})
        for p in self.progress:
            if on_progress:
                on_progress(p, f'Transcribing... {p}%')
        if self.error:
            raise self.error
        if self.result is not None:
            return self.result
        return {
            'id': 'tr_123',
            'text': ' '.join(u['text'] for u in UTTERANCES),
            'utterances': [dict(u) for u in UTTERANCES],
            'words': [],
            'audio_duration_ms': 125_500,
        }


class FakeExtractor:
    source = 'gpt-4o'

    def __init__(self, extraction=None, template_results=None, error=None, template_error=None):
        self.extraction = extraction
        self.template_results = template_results
        self.error = error
        self.template_error = template_error
        self.extract_calls = []
        self.field_calls = []

    def extract(self, text, utterances, roles, customer_name=None, call_type=None, deadline=None):
        self.extract_calls.append({'roles': roles, 'customer_name': customer_name, 'call_type': call_type})
        if self.error:
            raise self.error
        if self.extraction is not None:
            return self.extraction
        return {
            'summary': 'Broker offered a reefer load to Dallas at 2400 all in.',
            'keyPoints': ['Reefer load to Dallas', 'Pickup tomorrow'],
            'nextSteps': ['Send rate con', 'Confirm pickup time'],
            'painPoints': [],
            'requirements': ['Reefer'],
            'budget': '$2400',
            'timeline': 'Tomorrow',
            'callOutcome': 'qualified',
            'qualificationScore': 82,
            'urgency': 'high',
            'sentiment': 'positive',
            'raw': {'customerCompany': 'Lone Star Carriers', 'technicalRequirements': []},
        }

    def extract_fields(self, text, utterances, roles, field_defs, deadline=None):
        self.field_calls.append(field_defs)
        if self.template_error:
            raise self.template_error
        if self.template_results is not None:
            return self.template_results
        return [{'field_id': d['id'], 'field_name': d['name'], 'value': f'value for {d["name"]}'}
                for d in field_defs]


@pytest.fixture
def transcriber():
    return FakeTranscriber()


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def use_pipeline(monkeypatch):
    """Route triggered jobs through a CallPipeline built on the given fakes."""
    from loadvoice.jobs import process_call as pc

    def _use(transcriber, extractor, timeout_seconds=300):
        monkeypatch.setattr(pc, 'build_pipeline', lambda config=None: pc.CallPipeline(
            transcriber, extractor, timeout_seconds=timeout_seconds))
    return _use
