"""End-to-end detection over a generated library.

Sharded multi-worker runs must find exactly the pairs a brute-force
comparison of every record pair finds.
"""

import random
from itertools import combinations

import pytest

from musicdedup.models.concurrency import WorkerPoolConfig
from musicdedup.models.config import FuzzyMatchConfig
from musicdedup.models.dedup import DetectionStatus
from musicdedup.models.record import MusicRecord
from musicdedup.services.detection_service import DuplicateDetectionService
from musicdedup.services.duplicate_detector import DuplicateDetector
from musicdedup.services.field_comparators import evaluate_pair
from musicdedup.services.group_builder import DuplicateGroupBuilder

pytestmark = pytest.mark.integration

SONGS = [
    ("Hey Jude", "The Beatles", "Past Masters", 431),
    ("Bohemian Rhapsody", "Queen", "A Night at the Opera", 354),
    ("Imagine", "John Lennon", "Imagine", 183),
    ("Hotel California", "Eagles", "Hotel California", 391),
    ("Smells Like Teen Spirit", "Nirvana", "Nevermind", 301),
    ("Billie Jean", "Michael Jackson", "Thriller", 294),
    ("Wonderwall", "Oasis", "Morning Glory", 258),
    ("Purple Rain", "Prince", "Purple Rain", 521),
    ("Let It Be", "The Beatles", "Let It Be", 243),
    ("Heroes", "David Bowie", "Heroes", 371),
]


def _variants(rng, title, artist, album, duration):
    """Copies of one song the way a messy library accumulates them."""
    yield title, artist, album, duration
    yield title.upper(), artist, album, duration + rng.randint(-2, 2)
    yield f"{title} (Remastered)", artist.replace("The ", ""), f"{album} (Deluxe Edition)", duration
    if rng.random() < 0.5:
        yield title, artist, None, duration + rng.randint(-4, 4)
    if rng.random() < 0.3:
        yield title, "Various Artists", "Greatest Hits", duration + 60


@pytest.fixture(scope="module")
def library():
    rng = random.Random(7)
    records = []
    for title, artist, album, duration in SONGS:
        for variant in _variants(rng, title, artist, album, duration):
            record_id = len(records) + 1
            records.append(
                MusicRecord(
                    id=record_id,
                    file_path=f"/music/{rng.choice(['a', 'b', 'c'])}/{record_id:03d}.mp3",
                    title=variant[0],
                    artist=variant[1],
                    album=variant[2],
                    duration_seconds=variant[3],
                    bitrate_kbps=rng.choice([128, 192, 256, 320]),
                )
            )
    rng.shuffle(records)
    return records


@pytest.fixture(scope="module")
def config():
    return FuzzyMatchConfig.balanced()


@pytest.fixture(scope="module")
def expected_pairs(library, config):
    expected = set()
    for a, b in combinations(library, 2):
        pair = evaluate_pair(a, b, config)
        if pair.is_duplicate:
            expected.add(pair.ids)
    return expected


class TestShardedDetection:
    def test_library_has_duplicates(self, expected_pairs):
        assert len(expected_pairs) >= len(SONGS)

    @pytest.mark.parametrize(
        "workers,batch_size",
        [(1, 500), (2, 7), (4, 3), (8, 1)],
    )
    def test_matches_brute_force(self, library, config, expected_pairs, workers, batch_size):
        detector = DuplicateDetector(
            config, pool=WorkerPoolConfig(max_workers=workers, batch_size=batch_size)
        )
        result = detector.detect(library)

        n = len(library)
        assert result.status == DetectionStatus.COMPLETED
        assert {p.ids for p in result.pairs} == expected_pairs
        assert len(result.pairs) == len(expected_pairs)
        assert result.stats.comparisons_completed == n * (n - 1) // 2
        assert sum(w.comparisons_completed for w in detector.worker_stats) == n * (n - 1) // 2

    def test_groups_independent_of_worker_count(self, library, config, expected_pairs):
        single = DuplicateDetector(config, pool=WorkerPoolConfig(max_workers=1)).detect(library)
        sharded = DuplicateDetector(
            config, pool=WorkerPoolConfig(max_workers=6, batch_size=4)
        ).detect(library)

        assert [g.member_ids for g in single.groups] == [g.member_ids for g in sharded.groups]
        assert [c.keep_id for c in single.conflicts] == [c.keep_id for c in sharded.conflicts]

    def test_groups_partition_records(self, library, config):
        result = DuplicateDetector(config).detect(library)

        seen = [key for group in result.groups for key in group.member_ids]
        assert len(seen) == len(set(seen))
        assert result.groups == DuplicateGroupBuilder().build(reversed(result.pairs))

    def test_repeated_runs_rebuild_cache(self, library, config, expected_pairs):
        detector = DuplicateDetector(config, pool=WorkerPoolConfig(max_workers=3, batch_size=5))
        first = detector.detect(library)
        second = detector.detect(library)

        assert {p.ids for p in first.pairs} == {p.ids for p in second.pairs} == expected_pairs
        assert second.stats.cache_hits == 0


class TestServiceEndToEnd:
    def test_background_scan(self, library, config, expected_pairs):
        with DuplicateDetectionService(
            config, pool=WorkerPoolConfig(max_workers=4, batch_size=10)
        ) as service:
            run_id = service.start_scan(library)
            result = service.wait(run_id, timeout=60)

            assert result.status == DetectionStatus.COMPLETED
            assert {p.ids for p in result.pairs} == expected_pairs

            status = service.get_status(run_id)
            assert status.percent_complete == 100
            assert status.pairs_found == len(expected_pairs)

            for a, b in expected_pairs:
                assert b in service.find_similar(a)
                assert a in service.find_similar(b)
