"""AssemblyAI transcription client.

Calls the AssemblyAI v2 REST API directly with `requests`: submit the audio,
poll until the transcript is done and report estimated progress on the way.
"""

import time

import requests
from flask import current_app

from ..exceptions import TranscriptionFailure
from . import storage

# freight vocabulary boosted for recognition
FREIGHT_WORD_BOOST = [
    'load', 'lane', 'rate', 'haul', 'deadhead', 'backhaul', 'linehaul',
    'spot rate', 'contract rate', 'load board', 'freight',
    'dry van', 'reefer', 'flatbed', 'step deck', 'lowboy', 'conestoga',
    'tanker', 'hopper', 'RGN', 'power only', 'hotshot', 'box truck',
    'shipper', 'consignee', 'origin', 'destination', 'pickup', 'delivery',
    'dock', 'warehouse',
    'BOL', 'bill of lading', 'rate con', 'rate confirmation', 'POD',
    'proof of delivery', 'setup packet', 'carrier packet',
    'MC number', 'DOT number', 'FMCSA', 'broker', 'carrier', 'dispatcher',
    'driver', 'owner operator', 'detention', 'layover', 'lumper', 'TONU',
    'accessorials',
    "what's your rate", 'when can you pick up', 'ETA', 'check call', 'all in',
    'fuel surcharge', 'miles out', 'empty now', 'can you cover',
]

REQUEST_TIMEOUT = 60


def estimate_progress(status, elapsed):
    """Provider progress estimate (0-100) from job status and seconds spent polling."""
    if status == 'queued':
        return min(10 + elapsed * 0.5, 15)
    if status == 'processing':
        # a typical three minute call transcribes in about 45 seconds
        if elapsed < 10:
            return 15 + elapsed * 2
        if elapsed < 20:
            return 35 + (elapsed - 10) * 3
        if elapsed < 30:
            return 65 + (elapsed - 20) * 2
        return min(85 + (elapsed - 30) * 0.5, 95)
    return 10


def progress_message(status, poll_count):
    if status == 'queued':
        return 'Waiting in queue...'
    if status != 'processing':
        return 'Processing...'
    if poll_count < 5:
        return 'Analyzing audio quality...'
    if poll_count < 10:
        return 'Detecting speakers...'
    if poll_count < 15:
        return 'Transcribing conversation...'
    if poll_count < 20:
        return 'Processing speech patterns...'
    return 'Finalizing transcript...'


def _utterance_sentiment(u, sentiments):
    """Majority sentiment label of the sentences spoken within an utterance."""
    counts = {}
    for s in sentiments:
        start = s.get('start') or 0
        if start < (u.get('start') or 0) or start > (u.get('end') or 0):
            continue
        if s.get('speaker') is not None and u.get('speaker') is not None and s.get('speaker') != u.get('speaker'):
            continue
        label = (s.get('sentiment') or 'NEUTRAL').upper()
        counts[label] = counts.get(label, 0) + 1
    if not counts:
        return None
    return max(counts.items(), key=lambda kv: kv[1])[0]


def normalize_transcript(raw):
    """Reduce an AssemblyAI transcript JSON to the fields the pipeline stores."""
    sentiments = raw.get('sentiment_analysis_results') or []
    utterances = []
    for u in raw.get('utterances') or []:
        item = {
            'speaker': u.get('speaker'),
            'text': u.get('text') or '',
            'start': u.get('start'),
            'end': u.get('end'),
            'confidence': float(u.get('confidence') or 0.0),
        }
        sentiment = u.get('sentiment') or _utterance_sentiment(u, sentiments)
        if sentiment:
            item['sentiment'] = sentiment
        utterances.append(item)

    words = [
        {
            'text': w.get('text'),
            'start': w.get('start'),
            'end': w.get('end'),
            'speaker': w.get('speaker'),
            'confidence': w.get('confidence'),
        }
        for w in raw.get('words') or []
    ]

    # AssemblyAI reports audio_duration in seconds
    duration = raw.get('audio_duration')
    duration_ms = int(round(float(duration) * 1000)) if duration else None

    return {
        'id': raw.get('id'),
        'text': raw.get('text') or '',
        'utterances': utterances,
        'words': words,
        'audio_duration_ms': duration_ms,
    }


class AssemblyAITranscriber:
    def __init__(self, api_key, base_url='https://api.assemblyai.com/v2', poll_interval=3.0,
                 speakers_expected=2, max_polls=300, session=None, sleep=time.sleep, clock=time.monotonic):
        self.api_key = api_key
        self.base_url = base_url.rstrip('/')
        self.poll_interval = poll_interval
        self.speakers_expected = speakers_expected
        self.max_polls = max_polls
        self.session = session or requests.Session()
        self._sleep = sleep
        self._clock = clock

    @classmethod
    def from_config(cls, config):
        return cls(
            api_key=config.get('ASSEMBLYAI_API_KEY'),
            base_url=config.get('ASSEMBLYAI_BASE_URL', 'https://api.assemblyai.com/v2'),
            poll_interval=float(config.get('ASSEMBLYAI_POLL_INTERVAL', 3)),
            speakers_expected=int(config.get('ASSEMBLYAI_SPEAKERS_EXPECTED', 2)),
        )

    def _headers(self):
        return {'authorization': self.api_key}

    def _timeout(self, deadline):
        return deadline.timeout_for(REQUEST_TIMEOUT) if deadline else REQUEST_TIMEOUT

    def _request(self, method, path, deadline=None, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            r = self.session.request(method, url, headers=self._headers(), timeout=self._timeout(deadline), **kwargs)
            r.raise_for_status()
            return r.json()
        except requests.exceptions.HTTPError as e:
            body = e.response.text[:500] if e.response is not None else ''
            raise TranscriptionFailure(f"AssemblyAI {method} {path} failed: {e} {body}".strip(), cause=e) from e
        except requests.exceptions.RequestException as e:
            raise TranscriptionFailure(f"AssemblyAI {method} {path} failed: {e}", cause=e) from e
        except ValueError as e:
            raise TranscriptionFailure(f"AssemblyAI {method} {path} returned invalid JSON", cause=e) from e

    def resolve_audio_url(self, audio_url, deadline=None):
        """URL AssemblyAI can fetch; local files are uploaded first."""
        url = storage.public_url(audio_url)
        if url:
            return url
        data = storage.download_bytes(audio_url)
        current_app.logger.info('Uploading %d bytes of local audio to AssemblyAI', len(data))
        uploaded = self._request('POST', '/upload', deadline=deadline, data=data)
        upload_url = uploaded.get('upload_url')
        if not upload_url:
            raise TranscriptionFailure('AssemblyAI upload returned no upload_url')
        return upload_url

    def build_params(self, audio_url, speakers_expected=None, trim_start=None, trim_end=None):
        params = {
            'audio_url': audio_url,
            'speech_model': 'best',
            'speaker_labels': True,
            'speakers_expected': speakers_expected or self.speakers_expected,
            'sentiment_analysis': True,
            'punctuate': True,
            'format_text': True,
            'language_code': 'en',
            'word_boost': FREIGHT_WORD_BOOST,
            'boost_param': 'high',
        }
        # trim window arrives in seconds, AssemblyAI wants milliseconds
        if trim_start is not None and trim_start > 0:
            params['audio_start_from'] = int(trim_start * 1000)
        if trim_end is not None and trim_end > 0:
            params['audio_end_at'] = int(trim_end * 1000)
        return params

    def submit(self, audio_url, speakers_expected=None, trim_start=None, trim_end=None,
               on_progress=None, deadline=None):
        """Transcribe audio and block until the transcript is ready.

        on_progress(percent, message) is called zero or more times while the
        job runs. Returns {id, text, utterances, words, audio_duration_ms}.
        """
        if not self.api_key:
            raise TranscriptionFailure('ASSEMBLYAI_API_KEY is not configured')

        def report(percent, message):
            if on_progress:
                on_progress(int(round(percent)), message)

        report(0, 'Submitting audio to AssemblyAI...')
        fetch_url = self.resolve_audio_url(audio_url, deadline=deadline)
        params = self.build_params(fetch_url, speakers_expected, trim_start, trim_end)
        current_app.logger.info('Submitting transcription: speakers=%s trim=%s-%s',
                    params['speakers_expected'], trim_start, trim_end)
        job = self._request('POST', '/transcript', deadline=deadline, json=params)
        job_id = job.get('id')
        if not job_id:
            raise TranscriptionFailure('AssemblyAI did not return a transcript id')
        report(10, 'Queued for transcription...')

        started = self._clock()
        last_status = None
        raw = job
        for poll_count in range(1, self.max_polls + 1):
            if deadline:
                deadline.check('transcription')
            raw = self._request('GET', f'/transcript/{job_id}', deadline=deadline)
            status = raw.get('status')
            if status in ('completed', 'error'):
                break
            if status != last_status or poll_count % 3 == 0:
                elapsed = self._clock() - started
                report(estimate_progress(status, elapsed), progress_message(status, poll_count))
                last_status = status
            self._sleep(self.poll_interval)
        else:
            raise TranscriptionFailure(f'Transcription {job_id} did not finish after {self.max_polls} polls')

        if raw.get('status') == 'error':
            raise TranscriptionFailure(f"AssemblyAI transcription failed: {raw.get('error') or 'Unknown error'}")
        if not raw.get('text'):
            raise TranscriptionFailure('Transcription completed but no text was returned')
        if not raw.get('utterances'):
            current_app.logger.warning('Transcript %s has no utterances; speaker diarization may have failed', job_id)

        report(100, 'Transcription complete!')
        return normalize_transcript(raw)
