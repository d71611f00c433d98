"""Normalize provider recognition output into a TranscriptionResult.

The result document has the shape
``{results: [{alternatives: [{transcript, confidence, words: [...]}]}]}``.
Word timings arrive as numbers, duration strings ("1.500s") or
``{seconds, nanos}`` objects depending on the API version that wrote them.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from transcription_orchestrator.recognition.google_speech import DEFAULT_LANGUAGE
from transcription_orchestrator.utils.errors import ResultParseError

DEFAULT_SPEAKER_TAG = 1


@dataclass(frozen=True)
class Utterance:
    """A single recognized word with timing and speaker attribution."""

    word: str
    start_time: float
    end_time: float
    speaker_tag: int
    confidence: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "word": self.word,
            "startTime": self.start_time,
            "endTime": self.end_time,
            "speakerTag": self.speaker_tag,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class Speaker:
    """Aggregated speech statistics for one diarized speaker."""

    speaker_tag: int
    display_label: str
    total_speech_seconds: float
    word_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "speakerTag": self.speaker_tag,
            "displayLabel": self.display_label,
            "totalSpeechSeconds": self.total_speech_seconds,
            "wordCount": self.word_count,
        }


@dataclass(frozen=True)
class TranscriptionResult:
    """Transcript text with per-word utterances and per-speaker totals."""

    transcript: str
    speakers: list[Speaker] = field(default_factory=list)
    utterances: list[Utterance] = field(default_factory=list)
    confidence: float = 0.0
    language_code: str = DEFAULT_LANGUAGE

    def to_dict(self) -> dict[str, Any]:
        return {
            "transcript": self.transcript,
            "speakers": [s.to_dict() for s in self.speakers],
            "utterances": [u.to_dict() for u in self.utterances],
            "confidence": self.confidence,
            "languageCode": self.language_code,
        }


def parse_duration(value: Any) -> float:
    """Convert a provider time offset to seconds.

    Accepts numbers, strings such as "1.5s" or "1.5", and
    ``{"seconds": ..., "nanos": ...}`` mappings. Missing values are 0.0.
    """
    if value is None:
        return 0.0
    if isinstance(value, bool):
        raise ValueError(f"Invalid time offset: {value!r}")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("s"):
            text = text[:-1]
        return float(text) if text else 0.0
    if isinstance(value, Mapping):
        seconds = float(value.get("seconds", 0) or 0)
        nanos = float(value.get("nanos", 0) or 0)
        return seconds + nanos / 1e9
    raise ValueError(f"Invalid time offset: {value!r}")


def _speaker_tag(word: Mapping[str, Any]) -> int:
    """Resolve a word's speaker.

    ``speakerTag`` wins when present. A tag of 0 means the provider did not
    assign the word to a diarized speaker and maps to DEFAULT_SPEAKER_TAG,
    as does a missing tag. Without a tag, a numeric ``speakerLabel`` is used;
    non-numeric labels also fall back to the default.

    Raises:
        ValueError: If ``speakerTag`` is present but not an integer.
    """
    tag = word.get("speakerTag")
    if tag is not None:
        if isinstance(tag, bool) or (isinstance(tag, float) and not tag.is_integer()):
            raise ValueError(f"Invalid speakerTag: {tag!r}")
        tag = int(tag)
        return tag if tag != 0 else DEFAULT_SPEAKER_TAG
    label = word.get("speakerLabel")
    if label is not None:
        try:
            return int(label) or DEFAULT_SPEAKER_TAG
        except (TypeError, ValueError):
            pass
    return DEFAULT_SPEAKER_TAG


def _parse_word(word: Any) -> Utterance:
    """Convert one provider word entry.

    Raises:
        ResultParseError: If the entry is not an object or a field has the
            wrong type.
    """
    if not isinstance(word, Mapping):
        raise ResultParseError(
            f"Word entry must be an object, got {type(word).__name__}"
        )
    try:
        start = parse_duration(word.get("startTime", word.get("startOffset")))
        end = parse_duration(word.get("endTime", word.get("endOffset")))
    except (TypeError, ValueError) as exc:
        raise ResultParseError(f"Bad word timing: {exc}") from exc
    try:
        return Utterance(
            word=str(word.get("word", "") or ""),
            start_time=start,
            end_time=end,
            speaker_tag=_speaker_tag(word),
            confidence=float(word.get("confidence", 0.0) or 0.0),
        )
    except (TypeError, ValueError) as exc:
        raise ResultParseError(f"Bad word entry: {exc}") from exc


def _first_alternative(result: Any) -> Mapping[str, Any] | None:
    if not isinstance(result, Mapping):
        return None
    alternatives = result.get("alternatives") or []
    if not isinstance(alternatives, list) or not alternatives:
        return None
    if not isinstance(alternatives[0], Mapping):
        return None
    return alternatives[0]


def build_transcription_result(
    document: Mapping[str, Any], language_code: str = DEFAULT_LANGUAGE
) -> TranscriptionResult:
    """Build a TranscriptionResult from a decoded result document.

    Raises:
        ResultParseError: If the document structure or any word entry is
            malformed.
    """
    results = document.get("results") or []
    if not isinstance(results, list):
        raise ResultParseError(
            f"'results' must be a list, got {type(results).__name__}"
        )

    texts: list[str] = []
    utterances: list[Utterance] = []
    totals: dict[int, list[float]] = {}

    for result in results:
        alternative = _first_alternative(result)
        if alternative is None:
            continue
        texts.append(str(alternative.get("transcript", "") or ""))

        words = alternative.get("words") or []
        if not isinstance(words, list):
            raise ResultParseError(
                f"'words' must be a list, got {type(words).__name__}"
            )
        for word in words:
            utterance = _parse_word(word)
            utterances.append(utterance)
            # dict preserves first-seen order
            stats = totals.setdefault(utterance.speaker_tag, [0.0, 0])
            stats[0] += utterance.end_time - utterance.start_time
            stats[1] += 1

    speakers = [
        Speaker(
            speaker_tag=tag,
            display_label=f"Speaker {tag}",
            total_speech_seconds=seconds,
            word_count=int(count),
        )
        for tag, (seconds, count) in totals.items()
    ]

    first = _first_alternative(results[0]) if results else None
    try:
        confidence = float((first or {}).get("confidence", 0.0) or 0.0)
    except (TypeError, ValueError) as exc:
        raise ResultParseError(f"Bad result confidence: {exc}") from exc
    if results and isinstance(results[0], Mapping):
        language_code = str(results[0].get("languageCode") or language_code)

    return TranscriptionResult(
        transcript=" ".join(texts).strip(),
        speakers=speakers,
        utterances=utterances,
        confidence=confidence,
        language_code=language_code,
    )


def parse_transcription(
    raw: bytes | str, language_code: str = DEFAULT_LANGUAGE
) -> TranscriptionResult:
    """Decode a result document and normalize it.

    Raises:
        ResultParseError: If the document is not a JSON object.
    """
    try:
        document = json.loads(raw)
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise ResultParseError(f"Result is not valid JSON: {exc}") from exc
    if not isinstance(document, Mapping):
        raise ResultParseError(
            f"Result document must be an object, got {type(document).__name__}"
        )
    return build_transcription_result(document, language_code)
