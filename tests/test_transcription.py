import pytest
import requests

from loadvoice.exceptions import PipelineTimeout, TranscriptionFailure
from loadvoice.services.transcription import (
    AssemblyAITranscriber, FREIGHT_WORD_BOOST, estimate_progress, normalize_transcript,
)
from loadvoice.utils.timing import Deadline


class FakeResponse:
    def __init__(self, payload, status_code=200):
        self._payload = payload
        self.status_code = status_code
        self.text = str(payload)

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f'{self.status_code} error', response=self)

    def json(self):
        return self._payload


class FakeSession:
    def __init__(self, responses):
        self.responses = list(responses)
        self.requests = []

    def request(self, method, url, headers=None, timeout=None, **kwargs):
        self.requests.append((method, url, kwargs))
        return self.responses.pop(0)


RAW = {
    'id': 'tr_1', 'status': 'completed', 'text': 'I have a load. What is the rate?',
    'audio_duration': 125.5,
    'utterances': [
        {'speaker': 'A', 'text': 'I have a load.', 'start': 0, 'end': 1500, 'confidence': 0.9},
        {'speaker': 'B', 'text': 'What is the rate?', 'start': 1600, 'end': 3000, 'confidence': 0.8},
    ],
    'words': [{'text': 'I', 'start': 0, 'end': 100, 'speaker': 'A', 'confidence': 0.99}],
    'sentiment_analysis_results': [
        {'text': 'I have a load.', 'start': 0, 'end': 1500, 'sentiment': 'POSITIVE', 'speaker': 'A'},
        {'text': 'What is the rate?', 'start': 1600, 'end': 3000, 'sentiment': 'NEUTRAL', 'speaker': 'B'},
    ],
}


def transcriber(responses):
    return AssemblyAITranscriber('aai-key', poll_interval=0, session=FakeSession(responses), sleep=lambda s: None)


def test_normalize_transcript_converts_seconds_and_sentiment():
    out = normalize_transcript(RAW)
    assert out['audio_duration_ms'] == 125_500
    assert [u['sentiment'] for u in out['utterances']] == ['POSITIVE', 'NEUTRAL']
    assert out['words'][0]['speaker'] == 'A'
    assert normalize_transcript({'text': 'x'})['audio_duration_ms'] is None


def test_estimate_progress_bands():
    assert estimate_progress('queued', 0) == 10
    assert estimate_progress('queued', 100) == 15
    assert estimate_progress('processing', 5) == 25
    assert estimate_progress('processing', 15) == 50
    assert estimate_progress('processing', 600) == 95


def test_submit_polls_until_completed(app):
    t = transcriber([
        FakeResponse({'id': 'tr_1', 'status': 'queued'}),
        FakeResponse({'id': 'tr_1', 'status': 'queued'}),
        FakeResponse({'id': 'tr_1', 'status': 'processing'}),
        FakeResponse(RAW),
    ])
    progress = []
    out = t.submit('https://cdn.example.test/a.mp3', trim_start=2, trim_end=62.5,
                   on_progress=lambda p, m: progress.append(p))

    assert out['id'] == 'tr_1'
    assert out['text'] == RAW['text']
    method, url, kwargs = t.session.requests[0]
    assert (method, url) == ('POST', 'https://api.assemblyai.com/v2/transcript')
    params = kwargs['json']
    assert params['audio_url'] == 'https://cdn.example.test/a.mp3'
    assert params['audio_start_from'] == 2000
    assert params['audio_end_at'] == 62500
    assert params['speaker_labels'] is True
    assert params['word_boost'] == FREIGHT_WORD_BOOST
    assert progress[0] == 0 and progress[-1] == 100
    assert all(0 <= p <= 100 for p in progress)


def test_local_audio_is_uploaded_first(app, tmp_path):
    audio = tmp_path / 'call.wav'
    audio.write_bytes(b'RIFF....WAVE')
    t = transcriber([
        FakeResponse({'upload_url': 'https://cdn.assemblyai.test/upload/abc'}),
        FakeResponse({'id': 'tr_1', 'status': 'queued'}),
        FakeResponse(RAW),
    ])
    t.submit(f'file://{audio}')
    method, url, kwargs = t.session.requests[0]
    assert url.endswith('/upload')
    assert kwargs['data'] == b'RIFF....WAVE'
    assert t.session.requests[1][2]['json']['audio_url'] == 'https://cdn.assemblyai.test/upload/abc'


def test_provider_error_raises(app):
    t = transcriber([
        FakeResponse({'id': 'tr_1', 'status': 'queued'}),
        FakeResponse({'id': 'tr_1', 'status': 'error', 'error': 'File does not appear to contain audio'}),
    ])
    with pytest.raises(TranscriptionFailure, match='does not appear to contain audio'):
        t.submit('https://cdn.example.test/a.mp3')


def test_http_error_raises(app):
    t = transcriber([FakeResponse({'error': 'Authentication error'}, status_code=401)])
    with pytest.raises(TranscriptionFailure):
        t.submit('https://cdn.example.test/a.mp3')


def test_missing_key_raises(app):
    with pytest.raises(TranscriptionFailure):
        AssemblyAITranscriber(None, session=FakeSession([])).submit('https://cdn.example.test/a.mp3')


def test_polling_stops_at_deadline(app):
    now = {'t': 0.0}
    deadline = Deadline(300, call_id=5, clock=lambda: now['t'])

    def sleep(seconds):
        now['t'] += 200

    t = AssemblyAITranscriber('aai-key', poll_interval=3, sleep=sleep,
                              session=FakeSession([FakeResponse({'id': 'tr_1', 'status': 'queued'})] + [
                                  FakeResponse({'id': 'tr_1', 'status': 'processing'}) for _ in range(5)]))
    with pytest.raises(PipelineTimeout) as exc:
        t.submit('https://cdn.example.test/a.mp3', deadline=deadline)
    assert exc.value.call_id == 5
    assert str(exc.value) == 'Processing timed out after 300 seconds'
