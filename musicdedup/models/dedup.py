"""Data models for the duplicate detection system."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from musicdedup.models.record import RecordKey


class OutcomeStatus(str, Enum):
    COMPARED = "compared"
    SKIPPED = "skipped"


class FieldOutcome(BaseModel):
    """Result of comparing one field of two records.

    Either Compared(score) or Skipped(reason); skipped fields never
    count toward the duplicate decision.
    """

    model_config = ConfigDict(frozen=True)

    status: OutcomeStatus
    score: Optional[int] = Field(default=None, ge=0, le=100)
    matched: bool = False
    reason: Optional[str] = None

    @classmethod
    def compared(cls, score: int, matched: bool) -> "FieldOutcome":
        return cls(status=OutcomeStatus.COMPARED, score=score, matched=matched)

    @classmethod
    def skipped(cls, reason: str) -> "FieldOutcome":
        return cls(status=OutcomeStatus.SKIPPED, reason=reason)

    @property
    def is_skipped(self) -> bool:
        return self.status == OutcomeStatus.SKIPPED


class DuplicatePair(BaseModel):
    """Two records and their per-field similarity"""

    model_config = ConfigDict(frozen=True)

    first_id: RecordKey
    second_id: RecordKey
    field_scores: Dict[str, FieldOutcome] = Field(default_factory=dict)
    matching_fields: int = 0
    is_duplicate: bool = False
    bitrate_delta_kbps: Optional[int] = None

    @property
    def ids(self) -> tuple:
        return (self.first_id, self.second_id)

    def score_of(self, field_name: str) -> Optional[int]:
        outcome = self.field_scores.get(field_name)
        return outcome.score if outcome else None


class DuplicateGroup(BaseModel):
    """Connected component of duplicate pairs (two or more members)"""

    model_config = ConfigDict(frozen=True)

    group_id: int
    member_ids: List[RecordKey] = Field(..., min_length=2)

    @property
    def size(self) -> int:
        return len(self.member_ids)


class DirectoryConflict(BaseModel):
    """Group members sharing one parent directory, with a proposed resolution"""

    model_config = ConfigDict(frozen=True)

    directory: str
    group_id: int
    keep_id: RecordKey
    remove_ids: List[RecordKey] = Field(..., min_length=1)
    reason: str = ""

    @property
    def member_ids(self) -> List[RecordKey]:
        return [self.keep_id, *self.remove_ids]


class MalformedRecordWarning(BaseModel):
    """A record skipped because required data was missing"""

    model_config = ConfigDict(frozen=True)

    index: int
    record_key: Optional[RecordKey] = None
    reason: str


class DetectionStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (
            DetectionStatus.COMPLETED,
            DetectionStatus.CANCELLED,
            DetectionStatus.FAILED,
        )


class DetectionStats(BaseModel):
    """Detection run statistics"""

    total_records: int = 0
    records_skipped: int = 0
    comparisons_total: int = 0
    comparisons_completed: int = 0
    pairs_found: int = 0
    cache_hits: int = 0
    scoring_errors: int = 0
    duration_seconds: float = 0.0

    @property
    def percent_complete(self) -> int:
        """Completed comparisons as a 0-100 percentage"""
        if self.comparisons_total == 0:
            return 100
        return int(self.comparisons_completed * 100 / self.comparisons_total)


class ProgressUpdate(BaseModel):
    """Progress snapshot delivered to progress callbacks"""

    model_config = ConfigDict(frozen=True)

    run_id: str
    comparisons_completed: int
    comparisons_total: int
    pairs_found: int

    @property
    def percent_complete(self) -> int:
        if self.comparisons_total == 0:
            return 100
        return int(self.comparisons_completed * 100 / self.comparisons_total)


@dataclass
class DetectionResult:
    """Result of a detection run.

    A cancelled run still carries every pair emitted before the
    cancellation was observed; `incomplete` flags it as partial.
    A failed run has no result: detect() raises instead.
    """

    run_id: str
    status: DetectionStatus = DetectionStatus.IDLE
    pairs: List[DuplicatePair] = field(default_factory=list)
    groups: List[DuplicateGroup] = field(default_factory=list)
    conflicts: List[DirectoryConflict] = field(default_factory=list)
    warnings: List[MalformedRecordWarning] = field(default_factory=list)
    stats: DetectionStats = field(default_factory=DetectionStats)

    @property
    def incomplete(self) -> bool:
        return self.status == DetectionStatus.CANCELLED

    def skipped_summary(self) -> Optional[str]:
        """Summary line for skipped records, or None when nothing was skipped."""
        if not self.warnings:
            return None
        return f"{len(self.warnings)} records skipped due to missing data"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "incomplete": self.incomplete,
            "pairs": len(self.pairs),
            "groups": len(self.groups),
            "conflicts": len(self.conflicts),
            "records_skipped": len(self.warnings),
            "stats": self.stats.model_dump(),
        }


class ScanStatus(BaseModel):
    """Point-in-time view of a background scan"""

    run_id: str
    status: DetectionStatus
    comparisons_completed: int = 0
    comparisons_total: int = 0
    pairs_found: int = 0
    records_skipped: int = 0
    started_at: datetime
    finished_at: Optional[datetime] = None
    error: Optional[str] = None

    @property
    def percent_complete(self) -> int:
        if self.comparisons_total == 0:
            return 100 if self.status.is_terminal else 0
        return int(self.comparisons_completed * 100 / self.comparisons_total)
