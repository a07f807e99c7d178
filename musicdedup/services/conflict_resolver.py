"""
Directory-scoped conflict resolution.

Splits each duplicate group by parent directory. Every directory holding
two or more members of the same group becomes a DirectoryConflict with a
proposed copy to keep and an ordered list to remove.

Quality ranking for the kept copy:
1. Highest bitrate
2. Longest duration
3. Most complete metadata (non-blank title, artist, album)
4. Lowest identity

A missing bitrate or duration ranks below any known value, including 0.

Only proposes actions; deleting files is the file-management
collaborator's job.
"""

from typing import Callable, Dict, List, Optional, Tuple

import structlog

from musicdedup.models.dedup import DirectoryConflict, DuplicateGroup
from musicdedup.models.record import MusicRecord, RecordKey, parent_directory, sort_key

logger = structlog.get_logger()

PathLookup = Callable[[RecordKey], Optional[str]]
RecordLookup = Callable[[RecordKey], Optional[MusicRecord]]

UNKNOWN = -1


class DirectoryConflictResolver:
    """Proposes keep/remove actions for duplicates sharing a directory."""

    def resolve(
        self,
        groups: List[DuplicateGroup],
        path_of: PathLookup,
        record_of: Optional[RecordLookup] = None,
    ) -> List[DirectoryConflict]:
        """
        Build directory conflicts from already-computed groups.

        Args:
            groups: Duplicate groups of the current run
            path_of: Maps a record key to its file path
            record_of: Maps a record key to its record (bitrate/duration for
                ranking); without it the ranking falls back to identity

        Returns:
            Conflicts sorted by directory, then group id
        """
        conflicts: List[DirectoryConflict] = []

        for group in groups:
            by_directory: Dict[str, List[RecordKey]] = {}
            for key in group.member_ids:
                path = path_of(key)
                if not path:
                    logger.warning(
                        "conflict_member_without_path",
                        group_id=group.group_id,
                        record_key=key,
                    )
                    continue
                by_directory.setdefault(parent_directory(path), []).append(key)

            for directory, keys in by_directory.items():
                if len(keys) < 2:
                    continue
                conflicts.append(
                    self._build_conflict(group.group_id, directory, keys, record_of)
                )

        conflicts.sort(key=lambda c: (c.directory, c.group_id))
        logger.info(
            "directory_conflicts_resolved",
            groups=len(groups),
            conflicts=len(conflicts),
            files_to_remove=sum(len(c.remove_ids) for c in conflicts),
        )
        return conflicts

    def _build_conflict(
        self,
        group_id: int,
        directory: str,
        keys: List[RecordKey],
        record_of: Optional[RecordLookup],
    ) -> DirectoryConflict:
        records = {key: record_of(key) if record_of else None for key in keys}
        ranked = sorted(keys, key=lambda k: _quality_rank(k, records[k]))
        keep, remove = ranked[0], ranked[1:]
        return DirectoryConflict(
            directory=directory,
            group_id=group_id,
            keep_id=keep,
            remove_ids=remove,
            reason=selection_reason(records[keep], [records[k] for k in remove]),
        )


def _quality_signals(record: Optional[MusicRecord]) -> Tuple[int, int, int]:
    """(bitrate, duration, metadata fields), higher is better; unknown is -1."""
    if record is None:
        return (UNKNOWN, UNKNOWN, UNKNOWN)
    return (
        UNKNOWN if record.bitrate_kbps is None else record.bitrate_kbps,
        UNKNOWN if record.duration_seconds is None else record.duration_seconds,
        record.metadata_score,
    )


def _quality_rank(key: RecordKey, record: Optional[MusicRecord]) -> tuple:
    bitrate, duration, metadata = _quality_signals(record)
    return (-bitrate, -duration, -metadata, sort_key(key))


def selection_reason(
    keep: Optional[MusicRecord], others: List[Optional[MusicRecord]]
) -> str:
    """Explain why the kept copy ranked first.

    Names the first ranking signal on which the kept copy beats every
    copy still tied with it.
    """
    if keep is None:
        return "Lowest identity (no quality data)"

    bitrate, duration, metadata = _quality_signals(keep)
    kbps = f"{bitrate} kbps" if bitrate != UNKNOWN else "unknown bitrate"
    seconds = f"{duration}s" if duration != UNKNOWN else "unknown duration"
    reasons = (
        f"Highest bitrate ({kbps})",
        f"Longest duration ({seconds} at {kbps})",
        f"Better metadata ({metadata}/3 fields at {kbps})",
    )

    tied = [_quality_signals(o) for o in others]
    for position, reason in enumerate(reasons):
        value = (bitrate, duration, metadata)[position]
        if all(value > signals[position] for signals in tied):
            return reason
        tied = [signals for signals in tied if signals[position] == value]

    return f"Lowest identity ({kbps}, {seconds})"
