import pytest

from loadvoice.services.speaker_roles import (
    format_conversation, map_speakers_to_roles, mean_confidence, sentiment_from_utterances,
)
from conftest import UTTERANCES


def _u(speaker, text, confidence=0.9, sentiment=None):
    u = {'speaker': speaker, 'text': text, 'confidence': confidence}
    if sentiment:
        u['sentiment'] = sentiment
    return u


def test_no_utterances_maps_nothing():
    assert map_speakers_to_roles([]) == {}


def test_single_speaker_is_the_broker():
    assert map_speakers_to_roles([_u('A', 'hello'), _u('A', 'anyone there')]) == {'A': 'Broker'}


def test_broker_and_carrier_from_phrases():
    assert map_speakers_to_roles(UTTERANCES) == {'A': 'Broker', 'B': 'Carrier'}


def test_low_signal_falls_back_to_position():
    roles = map_speakers_to_roles([_u('A', 'hello'), _u('B', 'hi there')])
    assert roles == {'A': 'Broker', 'B': 'Customer'}


def test_short_carrier_turns_become_driver():
    roles = map_speakers_to_roles([
        _u('A', "I have a load going to Dallas, what's your rate?"),
        _u('B', 'My MC is 555, our trucks run reefer.'),
        _u('B', "I'm empty now, ten miles out."),
    ])
    assert roles == {'A': 'Broker', 'B': 'Driver'}


def test_someone_is_always_the_broker():
    roles = map_speakers_to_roles([
        _u('A', 'I need to ship pallets from our warehouse'),
        _u('B', 'Our trucks can cover it, my MC is 42'),
    ])
    assert roles == {'A': 'Broker', 'B': 'Carrier'}


def test_mapping_is_deterministic_and_complete():
    utterances = UTTERANCES + [_u('C', 'just listening in')]
    first = map_speakers_to_roles(utterances)
    assert first == map_speakers_to_roles(utterances)
    assert set(first) == {'A', 'B', 'C'}


def test_mean_confidence():
    assert mean_confidence([]) == 0.0
    assert round(mean_confidence(UTTERANCES), 4) == pytest.approx(0.8667)


def test_sentiment_from_utterances():
    assert sentiment_from_utterances(UTTERANCES) == (83, 'positive')
    assert sentiment_from_utterances([]) == (50, 'neutral')
    assert sentiment_from_utterances([_u('A', 'no', sentiment='NEGATIVE')]) == (0, 'negative')


def test_format_conversation_uses_roles():
    text = format_conversation(UTTERANCES[:2], {'A': 'Broker'})
    assert text.startswith('Broker: Thanks for calling')
    assert '\n\nSpeaker B: Sure, what is the rate?' in text
