"""Music record model supplied by the storage collaborator."""

from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, Field

RecordKey = Union[int, str]


class MusicRecord(BaseModel):
    """Metadata for a single music file.

    Treated as an immutable value for the duration of a detection run.
    """

    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    file_path: Optional[str] = None
    title: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    genre: Optional[str] = None
    track_number: Optional[int] = Field(default=None, ge=0)
    duration_seconds: Optional[int] = Field(default=None, ge=0)
    bitrate_kbps: Optional[int] = Field(default=None, ge=0)
    file_size_bytes: Optional[int] = Field(default=None, ge=0)

    @property
    def key(self) -> Optional[RecordKey]:
        """Identity used by the detection core.

        Persisted records are identified by id, others by their path.
        """
        if self.id is not None:
            return self.id
        return self.file_path or None

    @property
    def directory(self) -> str:
        """Parent directory of the file ("" when unknown)."""
        return parent_directory(self.file_path)

    @property
    def metadata_score(self) -> int:
        """Count of non-blank title/artist/album fields (0-3)."""
        return sum(
            1
            for value in (self.title, self.artist, self.album)
            if value is not None and value.strip()
        )


def parent_directory(path: Optional[str]) -> str:
    """Return the directory part of a POSIX or Windows path."""
    if not path:
        return ""
    cut = max(path.rfind("/"), path.rfind("\\"))
    if cut < 0:
        return ""
    if cut == 0:
        return path[0]
    return path[:cut]


def sort_key(key: RecordKey) -> tuple:
    """Total ordering over mixed int/str record keys.

    Integer ids sort before path keys, so persisted records are
    preferred as "lowest identity".
    """
    if isinstance(key, int):
        return (0, key, "")
    return (1, 0, str(key))
