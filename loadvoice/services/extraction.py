"""CRM extraction with OpenAI chat completions.

Like the transcription client this talks to the HTTP API with `requests`
rather than the `openai` SDK. Responses are requested as JSON objects and
normalized before the pipeline stores them.
"""

import json
import random
import time
from typing import Any, Dict, List

import requests
from flask import current_app

from ..exceptions import ExtractionFailure, TemplateExtractionFailure
from .speaker_roles import format_conversation

CHAT_COMPLETIONS_URL = 'https://api.openai.com/v1/chat/completions'

CALL_OUTCOMES = ('qualified', 'nurture', 'not_interested', 'follow_up_needed')
URGENCY_LEVELS = ('high', 'medium', 'low')
SENTIMENTS = ('positive', 'neutral', 'negative')

# (field name, field type, path into the normalized extraction)
CORE_FIELDS = [
    ('summary', 'text', ('summary',)),
    ('key_points', 'json', ('key_points',)),
    ('next_steps', 'json', ('next_steps',)),
    ('pain_points', 'json', ('pain_points',)),
    ('requirements', 'json', ('requirements',)),
    ('budget', 'text', ('budget',)),
    ('timeline', 'text', ('timeline',)),
    ('decision_maker', 'text', ('decision_maker',)),
    ('product_interest', 'json', ('product_interest',)),
    ('competitors_mentioned', 'json', ('competitors_mentioned',)),
    ('objections', 'json', ('objections',)),
    ('buying_signals', 'json', ('buying_signals',)),
    ('call_outcome', 'select', ('call_outcome',)),
    ('qualification_score', 'number', ('qualification_score',)),
    ('urgency', 'select', ('urgency',)),
    ('customer_company', 'text', ('raw', 'customer_company')),
    ('industry', 'text', ('raw', 'industry')),
    ('company_size', 'text', ('raw', 'company_size')),
    ('current_solution', 'text', ('raw', 'current_solution')),
    ('decision_process', 'text', ('raw', 'decision_process')),
    ('technical_requirements', 'json', ('raw', 'technical_requirements')),
]

SYSTEM_PROMPT = """You are an expert freight brokerage call analyst and CRM data extraction specialist.
You analyze recorded calls between brokers, shippers, carriers and drivers and extract structured, actionable CRM data.

Your extractions must be:
1. ACCURATE: only information explicitly stated or strongly implied
2. STRUCTURED: follow the exact JSON schema provided
3. ACTIONABLE: focus on data that helps the broker book and move freight
4. CONSISTENT: use consistent formatting and terminology

Always respond with valid JSON matching the requested schema."""

TEMPLATE_SYSTEM_PROMPT = """You are a CRM data extraction specialist. You extract specific custom fields from call transcripts.

You must:
1. Extract each requested field accurately
2. Match dropdown/select options exactly as provided
3. Assign confidence scores honestly (1.0 = explicit, 0.5 = implied, 0.0 = not found)
4. Return null for missing information, never guess
5. Follow the exact JSON schema provided

Always respond with valid JSON matching the requested schema."""

EXTRACTION_SCHEMA = """{
  "summary": "2-3 sentence executive summary of the call",
  "keyPoints": ["key discussion points"],
  "nextSteps": ["action items"],
  "painPoints": ["customer pain points discussed"],
  "requirements": ["customer requirements or needs"],
  "budget": "budget or rate mentioned, or null",
  "timeline": "timeline mentioned, or null",
  "decisionMaker": "decision maker name, or null",
  "productInterest": ["services or lanes discussed"],
  "competitorsMentioned": ["competitors mentioned"],
  "objections": ["objections raised"],
  "buyingSignals": ["positive buying signals"],
  "callOutcome": "qualified|nurture|not_interested|follow_up_needed",
  "qualificationScore": 0-100,
  "urgency": "high|medium|low",
  "sentiment": "positive|neutral|negative",
  "raw": {
    "customerCompany": "company name or null",
    "industry": "industry or null",
    "companySize": "company size or null",
    "currentSolution": "current solution or null",
    "decisionProcess": "decision process or null",
    "technicalRequirements": ["technical requirements"]
  }
}"""


def build_extraction_prompt(conversation, customer_name=None, call_type=None):
    context = []
    if customer_name:
        context.append(f"Customer Name: {customer_name}")
    if call_type:
        context.append(f"Call Type: {call_type}")
    header = '\n'.join(context) + '\n\n' if context else ''
    return (
        f"{header}Analyze this call transcript and extract structured CRM data.\n\n"
        f"CONVERSATION:\n{conversation}\n\n"
        f"Extract and return a JSON object with the following structure:\n{EXTRACTION_SCHEMA}\n\n"
        "IMPORTANT:\n"
        "- Only include information explicitly mentioned in the conversation\n"
        "- Use null for missing information, not empty strings\n"
        "- Qualification score should reflect pain points, budget, timeline, authority and fit\n"
    )


def build_template_prompt(conversation, field_defs):
    lines = []
    for f in field_defs:
        line = f"- [{f.get('id')}] {f.get('name')} ({f.get('type') or 'text'})"
        if f.get('description'):
            line += f": {f['description']}"
        if f.get('options'):
            line += f" - Options: {', '.join(str(o) for o in f['options'])}"
        if f.get('required'):
            line += ' [REQUIRED]'
        lines.append(line)
    return (
        "Extract the following custom CRM fields from this call transcript.\n\n"
        f"CONVERSATION:\n{conversation}\n\n"
        "FIELDS TO EXTRACT (id in brackets):\n" + '\n'.join(lines) + "\n\n"
        "Return a JSON object with this structure:\n"
        '{"fields": [{"field_id": "id from the list", "field_name": "Field Name", '
        '"value": "extracted value or null", "confidence": 0.0-1.0}]}\n\n'
        "RULES:\n"
        "- For select fields, use the exact option values provided\n"
        "- For boolean fields, use \"true\" or \"false\"\n"
        "- For number fields, use numeric strings\n"
        "- Use null if the information is not found\n"
        "- Confidence: 1.0 = explicitly stated, 0.8 = strongly implied, 0.5 = weakly implied, 0.0 = not found\n"
    )


def _list(value) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, list):
        return [v for v in value if v not in (None, '')]
    if isinstance(value, str):
        return [value] if value.strip() else []
    return [value]


def _text(value):
    if value is None:
        return None
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return str(value)


def _choice(value, allowed, default):
    if isinstance(value, str) and value.strip().lower() in allowed:
        return value.strip().lower()
    return default


def _score(value):
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, score))


def _pick(data, *keys):
    for k in keys:
        if k in data and data[k] is not None:
            return data[k]
    return None


def normalize_extraction(data: Dict[str, Any]) -> Dict[str, Any]:
    """Snake-case, typed view of a model response with defaults for gaps."""
    data = data if isinstance(data, dict) else {}
    raw = _pick(data, 'raw') or {}
    if not isinstance(raw, dict):
        raw = {}
    return {
        'summary': _text(data.get('summary')) or '',
        'key_points': _list(_pick(data, 'keyPoints', 'key_points')),
        'next_steps': _list(_pick(data, 'nextSteps', 'next_steps')),
        'pain_points': _list(_pick(data, 'painPoints', 'pain_points')),
        'requirements': _list(data.get('requirements')),
        'budget': _text(data.get('budget')),
        'timeline': _text(data.get('timeline')),
        'decision_maker': _text(_pick(data, 'decisionMaker', 'decision_maker')),
        'product_interest': _list(_pick(data, 'productInterest', 'product_interest')),
        'competitors_mentioned': _list(_pick(data, 'competitorsMentioned', 'competitors_mentioned')),
        'objections': _list(data.get('objections')),
        'buying_signals': _list(_pick(data, 'buyingSignals', 'buying_signals')),
        'call_outcome': _choice(_pick(data, 'callOutcome', 'call_outcome'), CALL_OUTCOMES, 'follow_up_needed'),
        'qualification_score': _score(_pick(data, 'qualificationScore', 'qualification_score')),
        'urgency': _choice(data.get('urgency'), URGENCY_LEVELS, 'medium'),
        'sentiment': _choice(data.get('sentiment'), SENTIMENTS, None),
        'raw': {
            'customer_company': _text(_pick(raw, 'customerCompany', 'customer_company')),
            'industry': _text(raw.get('industry')),
            'company_size': _text(_pick(raw, 'companySize', 'company_size')),
            'current_solution': _text(_pick(raw, 'currentSolution', 'current_solution')),
            'decision_process': _text(_pick(raw, 'decisionProcess', 'decision_process')),
            'technical_requirements': _list(_pick(raw, 'technicalRequirements', 'technical_requirements')),
        },
    }


def core_field_values(extraction):
    """Yield (name, type, value) for the core CRM fields of a normalized extraction."""
    for name, field_type, path in CORE_FIELDS:
        value = extraction
        for key in path:
            value = (value or {}).get(key)
        yield name, field_type, value


def validate_extraction(extraction):
    """Return (missing_fields, warnings) for a normalized extraction."""
    missing, warnings = [], []
    if len(extraction.get('summary') or '') < 10:
        missing.append('summary')
    if not extraction.get('key_points'):
        missing.append('key_points')
    if not extraction.get('pain_points'):
        warnings.append('No pain points identified')
    if not extraction.get('next_steps'):
        warnings.append('No next steps defined')
    if extraction.get('qualification_score', 0) > 70 and not extraction.get('timeline'):
        warnings.append('High qualification score but no timeline mentioned')
    return missing, warnings


def normalize_template_results(data) -> List[Dict[str, Any]]:
    if isinstance(data, dict):
        data = data.get('fields')
    if not isinstance(data, list):
        return []
    results = []
    for item in data:
        if not isinstance(item, dict):
            continue
        name = item.get('field_name') or item.get('name')
        if not name and item.get('field_id') is None:
            continue
        result = {'field_id': item.get('field_id'), 'field_name': name, 'value': item.get('value')}
        if item.get('confidence') is not None:
            try:
                result['confidence'] = max(0.0, min(1.0, float(item['confidence'])))
            except (TypeError, ValueError):
                pass
        results.append(result)
    return results


class OpenAIExtractor:
    def __init__(self, api_key, model='gpt-4o', max_attempts=4, url=CHAT_COMPLETIONS_URL,
                 session=None, sleep=time.sleep):
        self.api_key = api_key
        self.model = model
        self.max_attempts = max_attempts
        self.url = url
        self.session = session or requests.Session()
        self._sleep = sleep

    @classmethod
    def from_config(cls, config):
        return cls(
            api_key=config.get('OPENAI_API_KEY'),
            model=config.get('OPENAI_MODEL', 'gpt-4o'),
            max_attempts=int(config.get('OPENAI_MAX_ATTEMPTS', 4)),
        )

    @property
    def source(self):
        return self.model

    def _wait(self, response, backoff):
        ra = response.headers.get('Retry-After') if response is not None else None
        try:
            return float(ra) if ra else backoff
        except ValueError:
            # HTTP-date form
            return backoff

    def complete_json(self, system_prompt, user_prompt, deadline=None, error_cls=ExtractionFailure):
        """POST a chat completion and return the parsed JSON object it answered with.

        429 and 5xx responses and network errors are retried with exponential
        backoff, honouring Retry-After. An exhausted quota is not retried.
        """
        if not self.api_key:
            raise error_cls('OPENAI_API_KEY is not configured')
        headers = {'Authorization': f'Bearer {self.api_key}', 'Content-Type': 'application/json'}
        body = {
            'model': self.model,
            'messages': [
                {'role': 'system', 'content': system_prompt},
                {'role': 'user', 'content': user_prompt},
            ],
            'temperature': 0.1,
            'response_format': {'type': 'json_object'},
        }

        backoff = 1.0
        last_error = None
        for attempt in range(1, self.max_attempts + 1):
            timeout = deadline.timeout_for(120) if deadline else 120
            try:
                r = self.session.post(self.url, headers=headers, json=body, timeout=timeout)
            except requests.exceptions.RequestException as e:
                last_error = e
                current_app.logger.warning('OpenAI network error, attempt %s/%s, retrying in %ss',
                                           attempt, self.max_attempts, backoff)
            else:
                status = r.status_code
                if status == 429 and 'insufficient_quota' in (r.text or ''):
                    current_app.logger.error('OpenAI 429 indicates insufficient quota; body=%s', r.text[:1000])
                    raise error_cls('OpenAI quota exhausted')
                if status == 429 or 500 <= status < 600:
                    last_error = error_cls(f'OpenAI returned HTTP {status}')
                    wait = self._wait(r, backoff)
                    current_app.logger.warning('OpenAI request returned %s, attempt %s/%s, retrying in %ss; body=%s',
                                               status, attempt, self.max_attempts, wait, (r.text or '')[:500])
                    if attempt < self.max_attempts:
                        self._sleep(wait + random.uniform(0, 0.5))
                        backoff *= 2
                    continue
                if status >= 400:
                    current_app.logger.error('OpenAI HTTP error %s: %s', status, (r.text or '')[:1000])
                    raise error_cls(f'OpenAI request failed with HTTP {status}')
                try:
                    content = r.json()['choices'][0]['message']['content'] or '{}'
                    return json.loads(content)
                except (ValueError, KeyError, IndexError, TypeError) as e:
                    raise error_cls('OpenAI returned an unparseable response', cause=e) from e

            if attempt < self.max_attempts:
                self._sleep(backoff + random.uniform(0, 0.5))
                backoff *= 2

        raise error_cls(f'OpenAI request failed after {self.max_attempts} attempts: {last_error}', cause=last_error)

    def extract(self, text, utterances, roles, customer_name=None, call_type=None, deadline=None):
        """Core CRM extraction; returns the normalized extraction dict."""
        conversation = format_conversation(utterances, roles) if utterances else text
        prompt = build_extraction_prompt(conversation, customer_name, call_type)
        current_app.logger.info('Starting CRM extraction with %s', self.model)
        data = normalize_extraction(self.complete_json(SYSTEM_PROMPT, prompt, deadline=deadline))
        missing, warnings = validate_extraction(data)
        if missing or warnings:
            current_app.logger.info('Extraction gaps: missing=%s warnings=%s', missing, warnings)
        return data

    def extract_fields(self, text, utterances, roles, field_defs, deadline=None):
        """Template pass: [{field_id, field_name, value, confidence?}] for the given definitions."""
        conversation = format_conversation(utterances, roles) if utterances else text
        prompt = build_template_prompt(conversation, field_defs)
        current_app.logger.info('Extracting %d template fields', len(field_defs))
        data = self.complete_json(TEMPLATE_SYSTEM_PROMPT, prompt, deadline=deadline,
                                  error_cls=TemplateExtractionFailure)
        return normalize_template_results(data)
