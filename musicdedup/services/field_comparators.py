"""Per-field comparison strategies.

The comparable fields form a closed set of comparator variants. Each
variant carries its own normalization + scoring strategy and is
dispatched by pattern matching in compare_field().

Counted toward minimum_fields_matching:
- TitleField, ArtistField, AlbumField (similarity >= field threshold;
  empty on both sides matches unless count_empty_fields is off)
- DurationField (within absolute or percentage tolerance)

Not counted:
- BitrateField (tie-break signal for conflict resolution)
- TrackNumberField (veto when track_number_must_match is set)
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Union

from musicdedup.models.config import FuzzyMatchConfig
from musicdedup.models.dedup import DuplicatePair, FieldOutcome
from musicdedup.models.record import MusicRecord, sort_key
from musicdedup.services.similarity_scorer import SimilarityScorer
from musicdedup.services.text_normalizer import FieldKind, normalize


@dataclass(frozen=True)
class TitleField:
    name: str = "title"
    counts_toward_match: bool = True


@dataclass(frozen=True)
class ArtistField:
    name: str = "artist"
    counts_toward_match: bool = True


@dataclass(frozen=True)
class AlbumField:
    name: str = "album"
    counts_toward_match: bool = True


@dataclass(frozen=True)
class DurationField:
    name: str = "duration"
    counts_toward_match: bool = True


@dataclass(frozen=True)
class BitrateField:
    name: str = "bitrate"
    counts_toward_match: bool = False


@dataclass(frozen=True)
class TrackNumberField:
    name: str = "track_number"
    counts_toward_match: bool = False


FieldComparator = Union[
    TitleField, ArtistField, AlbumField, DurationField, BitrateField, TrackNumberField
]

COMPARATORS: List[FieldComparator] = [
    TitleField(),
    ArtistField(),
    AlbumField(),
    DurationField(),
    BitrateField(),
    TrackNumberField(),
]

COUNTED_FIELDS = tuple(c.name for c in COMPARATORS if c.counts_toward_match)


@dataclass(frozen=True)
class PreparedRecord:
    """A record with its text fields normalized once per run"""

    record: MusicRecord
    title: str
    artist: str
    album: str


def prepare(record: MusicRecord, config: FuzzyMatchConfig) -> PreparedRecord:
    opts = config.normalization
    return PreparedRecord(
        record=record,
        title=normalize(record.title, opts, FieldKind.TITLE),
        artist=normalize(record.artist, opts, FieldKind.ARTIST),
        album=normalize(record.album, opts, FieldKind.ALBUM),
    )


def compare_field(
    comparator: FieldComparator,
    a: PreparedRecord,
    b: PreparedRecord,
    config: FuzzyMatchConfig,
    scorer: SimilarityScorer,
) -> FieldOutcome:
    """Compare one field of two prepared records."""
    match comparator:
        case TitleField():
            return _compare_text(a.title, b.title, config.title_threshold, config, scorer)
        case ArtistField():
            return _compare_text(a.artist, b.artist, config.artist_threshold, config, scorer)
        case AlbumField():
            return _compare_text(a.album, b.album, config.album_threshold, config, scorer)
        case DurationField():
            return _compare_duration(
                a.record.duration_seconds, b.record.duration_seconds, config
            )
        case BitrateField():
            return _compare_bitrate(a.record.bitrate_kbps, b.record.bitrate_kbps, config)
        case TrackNumberField():
            return _compare_track(a.record.track_number, b.record.track_number, config)
    raise TypeError(f"Unknown field comparator: {comparator!r}")


def _compare_text(
    first: str,
    second: str,
    threshold: float,
    config: FuzzyMatchConfig,
    scorer: SimilarityScorer,
) -> FieldOutcome:
    if not first and not second:
        if config.count_empty_fields:
            return FieldOutcome.compared(100, True)
        return FieldOutcome.skipped("both values empty")
    score = scorer.score(first, second, threshold=threshold)
    return FieldOutcome.compared(score, score >= threshold)


def _compare_duration(
    first: Optional[int], second: Optional[int], config: FuzzyMatchConfig
) -> FieldOutcome:
    if first is None or second is None:
        return FieldOutcome.skipped("missing duration")

    diff = abs(first - second)
    matched = diff <= config.duration_tolerance_seconds
    if not matched and config.duration_tolerance_percent > 0:
        mean = (first + second) / 2.0
        matched = mean > 0 and (diff / mean) * 100.0 <= config.duration_tolerance_percent
    return FieldOutcome.compared(100 if matched else 0, matched)


def _compare_bitrate(
    first: Optional[int], second: Optional[int], config: FuzzyMatchConfig
) -> FieldOutcome:
    if first is None or second is None:
        return FieldOutcome.skipped("missing bitrate")
    matched = abs(first - second) <= config.bitrate_tolerance_kbps
    return FieldOutcome.compared(100 if matched else 0, matched)


def _compare_track(
    first: Optional[int], second: Optional[int], config: FuzzyMatchConfig
) -> FieldOutcome:
    if first is None or second is None:
        return FieldOutcome.skipped("missing track number")
    matched = first == second
    return FieldOutcome.compared(100 if matched else 0, matched)


def count_matching(outcomes: Dict[str, FieldOutcome]) -> int:
    """Number of counted fields that met their threshold or tolerance."""
    return sum(
        1
        for name in COUNTED_FIELDS
        if name in outcomes and not outcomes[name].is_skipped and outcomes[name].matched
    )


def track_numbers_agree(outcomes: Dict[str, FieldOutcome], config: FuzzyMatchConfig) -> bool:
    if not config.track_number_must_match:
        return True
    outcome = outcomes.get(TrackNumberField.name)
    if outcome is None or outcome.is_skipped:
        return config.ignore_missing_track_number
    return outcome.matched


def is_duplicate(outcomes: Dict[str, FieldOutcome], config: FuzzyMatchConfig) -> bool:
    """Duplicate iff enough counted fields match and no veto applies."""
    if not track_numbers_agree(outcomes, config):
        return False
    return count_matching(outcomes) >= config.minimum_fields_matching


def evaluate_prepared(
    a: PreparedRecord,
    b: PreparedRecord,
    config: FuzzyMatchConfig,
    scorer: SimilarityScorer,
) -> DuplicatePair:
    """Run every comparator over two prepared records."""
    outcomes = {c.name: compare_field(c, a, b, config, scorer) for c in COMPARATORS}

    first, second = a.record, b.record
    if sort_key(second.key) < sort_key(first.key):
        first, second = second, first

    bitrate_delta = None
    if first.bitrate_kbps is not None and second.bitrate_kbps is not None:
        bitrate_delta = abs(first.bitrate_kbps - second.bitrate_kbps)

    return DuplicatePair(
        first_id=first.key,
        second_id=second.key,
        field_scores=outcomes,
        matching_fields=count_matching(outcomes),
        is_duplicate=is_duplicate(outcomes, config),
        bitrate_delta_kbps=bitrate_delta,
    )


def evaluate_pair(
    a: MusicRecord,
    b: MusicRecord,
    config: FuzzyMatchConfig,
    scorer: Optional[SimilarityScorer] = None,
) -> DuplicatePair:
    """Compare two records directly (normalizes on the fly)."""
    return evaluate_prepared(
        prepare(a, config), prepare(b, config), config, scorer or SimilarityScorer()
    )


def breakdown(
    a: MusicRecord,
    b: MusicRecord,
    config: FuzzyMatchConfig,
    scorer: Optional[SimilarityScorer] = None,
) -> str:
    """Per-field similarity breakdown for display."""
    pair = evaluate_pair(a, b, config, scorer)
    thresholds = {
        "title": config.title_threshold,
        "artist": config.artist_threshold,
        "album": config.album_threshold,
    }

    lines = ["Similarity Breakdown:"]
    for name, threshold in thresholds.items():
        outcome = pair.field_scores[name]
        label = name.capitalize()
        if outcome.is_skipped:
            lines.append(f"  {label}: skipped ({outcome.reason})")
        else:
            lines.append(f"  {label}: {outcome.score}% (threshold: {threshold:.1f}%)")

    for name, label in (("duration", "Duration"), ("track_number", "Track")):
        outcome = pair.field_scores[name]
        if outcome.is_skipped:
            lines.append(f"  {label}: skipped ({outcome.reason})")
        else:
            lines.append(f"  {label}: {'MATCH' if outcome.matched else 'NO MATCH'}")

    lines.append(
        f"  Matching fields: {pair.matching_fields}/{len(COUNTED_FIELDS)}"
        f" (required: {config.minimum_fields_matching})"
    )
    lines.append(f"  Result: {'DUPLICATE' if pair.is_duplicate else 'NOT DUPLICATE'}")
    return "\n".join(lines)
