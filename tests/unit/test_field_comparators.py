"""Tests for per-field comparison and the duplicate decision."""

from unittest.mock import MagicMock

import pytest

from musicdedup.models.config import FuzzyMatchConfig
from musicdedup.models.dedup import OutcomeStatus
from musicdedup.models.record import MusicRecord
from musicdedup.services.field_comparators import (
    COUNTED_FIELDS,
    AlbumField,
    BitrateField,
    DurationField,
    TitleField,
    TrackNumberField,
    breakdown,
    compare_field,
    evaluate_pair,
    prepare,
)
from musicdedup.services.similarity_scorer import SimilarityScorer


def _record(record_id, title=None, artist=None, album=None, **kwargs):
    return MusicRecord(
        id=record_id,
        file_path=kwargs.pop("file_path", f"/music/{record_id}.mp3"),
        title=title,
        artist=artist,
        album=album,
        **kwargs,
    )


@pytest.fixture
def config():
    return FuzzyMatchConfig()


class TestComparators:
    def test_counted_fields(self):
        assert COUNTED_FIELDS == ("title", "artist", "album", "duration")

    def test_unknown_comparator_rejected(self, config):
        a = prepare(_record(1, "x"), config)
        with pytest.raises(TypeError):
            compare_field(object(), a, a, config, SimilarityScorer())  # type: ignore[arg-type]

    def test_both_empty_text_matches(self, config):
        a = prepare(_record(1, "Song"), config)
        b = prepare(_record(2, "Song", album="   "), config)
        outcome = compare_field(AlbumField(), a, b, config, SimilarityScorer())
        assert outcome.status == OutcomeStatus.COMPARED
        assert outcome.score == 100
        assert outcome.matched

    def test_both_empty_text_skipped_when_not_counted(self):
        config = FuzzyMatchConfig(count_empty_fields=False)
        a = prepare(_record(1, "Song"), config)
        b = prepare(_record(2, "Song"), config)
        outcome = compare_field(AlbumField(), a, b, config, SimilarityScorer())
        assert outcome.status == OutcomeStatus.SKIPPED
        assert outcome.reason == "both values empty"
        assert not outcome.matched

    def test_one_empty_text_scores_zero(self, config):
        a = prepare(_record(1, "Song", album="Record"), config)
        b = prepare(_record(2, "Song"), config)
        outcome = compare_field(AlbumField(), a, b, config, SimilarityScorer())
        assert outcome.status == OutcomeStatus.COMPARED
        assert outcome.score == 0
        assert not outcome.matched

    def test_text_uses_normalized_values(self, config):
        a = prepare(_record(1, "HELLO, World!"), config)
        b = prepare(_record(2, "hello world"), config)
        outcome = compare_field(TitleField(), a, b, config, SimilarityScorer())
        assert outcome.score == 100
        assert outcome.matched


class TestDuration:
    def _compare(self, config, first, second):
        a = prepare(_record(1, duration_seconds=first), config)
        b = prepare(_record(2, duration_seconds=second), config)
        return compare_field(DurationField(), a, b, config, SimilarityScorer())

    def test_within_absolute_tolerance(self, config):
        assert self._compare(config, 200, 210).matched

    def test_outside_both_tolerances(self):
        config = FuzzyMatchConfig(duration_tolerance_seconds=5, duration_tolerance_percent=0)
        assert not self._compare(config, 200, 206).matched

    def test_within_percent_tolerance(self):
        # 12s apart but under 5% of the mean
        config = FuzzyMatchConfig(duration_tolerance_seconds=10, duration_tolerance_percent=5)
        assert self._compare(config, 300, 312).matched

    def test_missing_duration_is_skipped(self, config):
        outcome = self._compare(config, None, 200)
        assert outcome.is_skipped
        assert outcome.reason == "missing duration"

    def test_zero_tolerance_requires_equality(self):
        config = FuzzyMatchConfig(duration_tolerance_seconds=0, duration_tolerance_percent=0)
        assert self._compare(config, 200, 200).matched
        assert not self._compare(config, 200, 201).matched


class TestBitrateAndTrack:
    def test_bitrate_never_counts(self):
        config = FuzzyMatchConfig(count_empty_fields=False)
        pair = evaluate_pair(
            _record(1, "A", bitrate_kbps=320), _record(2, "Z", bitrate_kbps=320), config
        )
        assert pair.field_scores["bitrate"].matched
        assert pair.matching_fields == 0
        assert BitrateField().counts_toward_match is False

    def test_bitrate_delta(self, config):
        pair = evaluate_pair(
            _record(1, "Song", bitrate_kbps=128), _record(2, "Song", bitrate_kbps=320), config
        )
        assert pair.bitrate_delta_kbps == 192

    def test_track_number_compared(self, config):
        a = prepare(_record(1, track_number=3), config)
        b = prepare(_record(2, track_number=4), config)
        outcome = compare_field(TrackNumberField(), a, b, config, SimilarityScorer())
        assert outcome.status == OutcomeStatus.COMPARED
        assert not outcome.matched


class TestDuplicateDecision:
    def test_test_snog_is_duplicate(self):
        """Transposed title plus identical artist and close duration."""
        config = FuzzyMatchConfig(
            title_threshold=85,
            artist_threshold=90,
            duration_tolerance_seconds=5,
            minimum_fields_matching=2,
        )
        pair = evaluate_pair(
            _record(1, "Test Song", "Test Artist", duration_seconds=200),
            _record(2, "Test Snog", "Test Artist", duration_seconds=201),
            config,
        )
        assert pair.is_duplicate
        assert pair.score_of("title") >= 85
        assert pair.score_of("artist") == 100
        assert pair.field_scores["duration"].matched
        assert pair.matching_fields == 3

    def test_duration_not_required(self):
        """Title and artist alone satisfy two required fields."""
        config = FuzzyMatchConfig(
            title_threshold=85,
            artist_threshold=90,
            duration_tolerance_seconds=0,
            duration_tolerance_percent=0,
            minimum_fields_matching=2,
        )
        pair = evaluate_pair(
            _record(1, "Test Song", "Test Artist", duration_seconds=200),
            _record(2, "Test Snog", "Test Artist", duration_seconds=201),
            config,
        )
        assert not pair.field_scores["duration"].matched
        assert pair.matching_fields == 2
        assert pair.is_duplicate

    def test_not_enough_fields(self, config):
        pair = evaluate_pair(
            _record(1, "Yesterday", "The Beatles", "Help!"),
            _record(2, "Yesterday", "Boyz II Men", "Evolution"),
            config,
        )
        assert pair.matching_fields == 1
        assert not pair.is_duplicate

    def test_empty_fields_count_by_default(self):
        """Untagged albums on both sides count, as a sparse library needs."""
        config = FuzzyMatchConfig(minimum_fields_matching=2)
        pair = evaluate_pair(_record(1, artist="Band"), _record(2, artist="Band"), config)
        assert pair.field_scores["title"].matched
        assert pair.field_scores["album"].matched
        assert pair.matching_fields == 3
        assert pair.is_duplicate

    def test_skipped_fields_do_not_count(self):
        config = FuzzyMatchConfig(minimum_fields_matching=3, count_empty_fields=False)
        pair = evaluate_pair(
            _record(1, "Song", "Artist"), _record(2, "Song", "Artist"), config
        )
        # album and duration are missing on both sides
        assert pair.field_scores["album"].is_skipped
        assert pair.field_scores["duration"].is_skipped
        assert pair.matching_fields == 2
        assert not pair.is_duplicate

    def test_pair_ids_are_ordered(self, config):
        pair = evaluate_pair(_record(9, "Song"), _record(3, "Song"), config)
        assert pair.ids == (3, 9)

    def test_symmetric_decision(self, config):
        a = _record(1, "Hey Jude", "Beatles", duration_seconds=431)
        b = _record(2, "Hey Jude (Remastered)", "The Beatles", duration_seconds=425)
        assert evaluate_pair(a, b, config) == evaluate_pair(b, a, config)


class TestTrackNumberVeto:
    def _pair(self, config, first_track, second_track):
        return evaluate_pair(
            _record(1, "Song", "Artist", "Album", track_number=first_track),
            _record(2, "Song", "Artist", "Album", track_number=second_track),
            config,
        )

    def test_mismatch_ignored_by_default(self, config):
        assert self._pair(config, 1, 2).is_duplicate

    def test_mismatch_vetoes_when_required(self):
        config = FuzzyMatchConfig(track_number_must_match=True)
        assert not self._pair(config, 1, 2).is_duplicate
        assert self._pair(config, 5, 5).is_duplicate

    def test_missing_track_allowed(self):
        config = FuzzyMatchConfig(track_number_must_match=True)
        assert self._pair(config, None, 2).is_duplicate

    def test_missing_track_rejected(self):
        config = FuzzyMatchConfig(
            track_number_must_match=True, ignore_missing_track_number=False
        )
        assert not self._pair(config, None, 2).is_duplicate


class TestThresholdBoundary:
    """Scores exactly at a threshold match; one point below does not."""

    @pytest.fixture
    def boundary_config(self):
        return FuzzyMatchConfig(
            title_threshold=85,
            artist_threshold=90,
            album_threshold=80,
            minimum_fields_matching=3,
        )

    @pytest.fixture
    def records(self):
        return (
            _record(1, "Alpha", "Band", "Record"),
            _record(2, "Alfa", "Bend", "Recrod"),
        )

    def _scorer(self, below=None):
        scorer = MagicMock(spec=SimilarityScorer)

        def fake_score(a, b, threshold=None):
            if below and below in (a, b):
                return int(threshold) - 1
            return int(threshold)

        scorer.score.side_effect = fake_score
        return scorer

    def test_exactly_at_thresholds_is_duplicate(self, boundary_config, records):
        pair = evaluate_pair(*records, boundary_config, self._scorer())
        assert pair.score_of("title") == 85
        assert pair.score_of("artist") == 90
        assert pair.score_of("album") == 80
        assert pair.matching_fields == 3
        assert pair.is_duplicate

    @pytest.mark.parametrize("below", ["alpha", "band", "record"])
    def test_one_point_below_is_not_duplicate(self, boundary_config, records, below):
        pair = evaluate_pair(*records, boundary_config, self._scorer(below=below))
        assert pair.matching_fields == 2
        assert not pair.is_duplicate


class TestBreakdown:
    def test_lists_every_field(self, config):
        text = breakdown(
            _record(1, "Song", "Artist", duration_seconds=200),
            _record(2, "Song", "Artist", duration_seconds=202),
            config,
        )
        assert text.startswith("Similarity Breakdown:")
        assert "Title: 100% (threshold: 85.0%)" in text
        assert "Artist: 100% (threshold: 90.0%)" in text
        assert "Album: 100% (threshold: 85.0%)" in text
        assert "Duration: MATCH" in text
        assert "Track: skipped (missing track number)" in text
        assert "Result: DUPLICATE" in text

    def test_not_duplicate(self, config):
        text = breakdown(
            _record(1, "Song", "Band", "Record"), _record(2, "Other", "Act", "Tape"), config
        )
        assert "Result: NOT DUPLICATE" in text

    def test_empty_fields_skipped_when_not_counted(self):
        config = FuzzyMatchConfig(count_empty_fields=False)
        text = breakdown(_record(1, "Song", "Artist"), _record(2, "Song", "Artist"), config)
        assert "Album: skipped (both values empty)" in text
