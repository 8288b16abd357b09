# loadvoice/services/speaker_roles.py
"""Heuristics over diarized utterances: speaker roles, confidence, sentiment.

utterances: [{speaker, text, start, end, confidence, sentiment?}]
"""

BROKER = "Broker"
SHIPPER = "Shipper"
CARRIER = "Carrier"
DRIVER = "Driver"
CUSTOMER = "Customer"

BROKER_PHRASES = (
    "what's your rate", "i can offer", "i have a load", "we have a load",
    "our customer", "our shipper", "rate confirmation", "rate con",
    "i'll send you", "what equipment", "when can you pick up", "can you cover",
    "are you empty", "where are you now", "check call", "need you to",
    "bol number", "reference number", "detention", "layover", "fuel surcharge",
    "all in rate", "linehaul", "accessorials", "setup packet", "carrier packet",
    "insurance certificate", "w9", "authority", "let me check", "i'll confirm",
    "my customer", "the shipper", "the consignee", "i'll book", "let me book",
)

SHIPPER_PHRASES = (
    "i need to ship", "we need to move", "our facility", "our warehouse",
    "our dock", "pickup appointment", "delivery appointment", "loading time",
    "unloading", "commodity", "product", "pallets", "weight", "our receiver",
    "ship date", "ready to load", "needs to deliver", "our plant",
    "our distribution", "bill to", "purchase order", "vendor", "supplier",
)

CARRIER_PHRASES = (
    "i'm empty", "i'm available", "my trucks", "our trucks", "my drivers",
    "our drivers", "my rate is", "i charge", "we charge", "our rate",
    "mc number is", "my mc", "our mc", "dot number", "my company", "our fleet",
    "we run", "our lanes", "our equipment", "i can cover", "we can cover",
    "i'll dispatch", "send driver",
)

DRIVER_PHRASES = (
    "i'm at", "miles out", "eta", "just loaded", "just delivered", "breakdown",
    "traffic", "weather delay", "dot inspection", "weigh station", "truck stop",
    "i'm driving", "my truck", "fuel stop", "rest break", "hours of service",
    "eld", "i'm rolling", "i'm empty now", "heading to", "on my way",
    "should be there",
)

# below this every role is a guess and position decides
MIN_ROLE_SCORE = 3


def _speaker_key(u):
    spk = u.get("speaker")
    return str(spk) if spk is not None else "A"


def _phrase_score(text, phrases, weight):
    return sum(weight for p in phrases if p in text)


def map_speakers_to_roles(utterances):
    """Assign each distinct speaker id exactly one role.

    Deterministic: speakers are visited in order of first appearance, so the
    same utterances always produce the same mapping.
    """
    if not utterances:
        return {}

    speakers = []
    by_spk = {}
    for u in utterances:
        spk = _speaker_key(u)
        if spk not in by_spk:
            speakers.append(spk)
            by_spk[spk] = []
        by_spk[spk].append(u)

    if len(speakers) == 1:
        # a lone voice is the broker recording their own side
        return {speakers[0]: BROKER}

    total = len(utterances)
    first_speaker = _speaker_key(utterances[0])
    mapping = {}
    for index, spk in enumerate(speakers):
        turns = by_spk[spk]
        text = " ".join((u.get("text") or "").lower() for u in turns)
        word_count = len(text.split())

        scores = {
            BROKER: _phrase_score(text, BROKER_PHRASES, 2),
            SHIPPER: _phrase_score(text, SHIPPER_PHRASES, 2),
            CARRIER: _phrase_score(text, CARRIER_PHRASES, 2),
            # driver phrases are more specific
            DRIVER: _phrase_score(text, DRIVER_PHRASES, 3),
        }
        if spk == first_speaker:
            scores[BROKER] += 1
        if len(turns) / total > 0.55:
            scores[BROKER] += 1

        # stable on ties: Broker > Shipper > Carrier > Driver
        role, best = max(scores.items(), key=lambda kv: kv[1])

        if role == CARRIER and scores[DRIVER] > scores[CARRIER] * 0.8:
            # short status updates read like a driver on a check call
            if word_count / len(turns) < 20:
                role = DRIVER

        if best < MIN_ROLE_SCORE:
            role = BROKER if index == 0 else CUSTOMER

        mapping[spk] = role

    if BROKER not in mapping.values():
        # the user is always on the call; give it to whoever talks most
        busiest = max(speakers, key=lambda s: len(by_spk[s]))
        mapping[busiest] = BROKER

    return mapping


def mean_confidence(utterances):
    """Arithmetic mean of utterance confidences, 0.0 when there are none."""
    if not utterances:
        return 0.0
    total = sum(float(u.get("confidence") or 0.0) for u in utterances)
    return total / len(utterances)


def sentiment_from_utterances(utterances):
    """Overall sentiment from per-utterance labels.

    POSITIVE counts 100, NEUTRAL 50, NEGATIVE 0; returns (score, type).
    """
    if not utterances:
        return 50, "neutral"
    weights = {"POSITIVE": 100, "NEUTRAL": 50, "NEGATIVE": 0}
    values = [weights.get((u.get("sentiment") or "NEUTRAL").upper(), 50) for u in utterances]
    score = round(sum(values) / len(values))
    if score >= 70:
        return score, "positive"
    if score >= 40:
        return score, "neutral"
    return score, "negative"


def format_conversation(utterances, speaker_mapping):
    """Render utterances as "Role: text" paragraphs for prompts."""
    lines = []
    for u in utterances or []:
        spk = _speaker_key(u)
        role = (speaker_mapping or {}).get(spk) or f"Speaker {spk}"
        text = (u.get("text") or "").strip()
        if text:
            lines.append(f"{role}: {text}")
    return "\n\n".join(lines)
