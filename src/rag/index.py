"""
Chunk records and candidate matches, plus JSONL loading for local indices.
"""

from __future__ import annotations

import dataclasses
import json
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from .errors import InvalidChunkMetadata


ROOT = Path(__file__).resolve().parents[2]
CHUNKS_PATH = ROOT / "data" / "chunks.jsonl"

# camelCase keys written by the chunk producer -> ChunkMetadata fields
_FIELD_ALIASES: Dict[str, str] = {
    "documentId": "document_id",
    "chunkIndex": "chunk_index",
    "pageStart": "page_start",
    "pageEnd": "page_end",
    "totalChunks": "total_chunks",
    "sectionNumber": "section_number",
    "sectionTitle": "section_title",
    "text": "content",
}


def _opt_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return ", ".join(str(v) for v in value)
    return str(value)


@dataclasses.dataclass(frozen=True)
class ChunkMetadata:
    """Metadata of one chunk: identity fields are required, enrichments are optional."""

    document_id: str
    chunk_index: int
    page_start: Optional[int] = None
    page_end: Optional[int] = None
    total_chunks: Optional[int] = None
    content: str = ""
    summary: Optional[str] = None
    section_number: Optional[str] = None
    section_title: Optional[str] = None
    topics: Optional[str] = None
    citation: Optional[str] = None
    filename: Optional[str] = None
    timestamp: Optional[str] = None
    extra: Mapping[str, Any] = dataclasses.field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any] | None, index_name: str = "") -> "ChunkMetadata":
        """
        Build from a backend metadata map (camelCase or snake_case keys).

        document_id falls back to filename, then to the index name. A missing
        or non-integer chunk index raises InvalidChunkMetadata.
        """
        fields = {f.name for f in dataclasses.fields(cls)}
        values: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        for k, v in (raw or {}).items():
            name = _FIELD_ALIASES.get(k, k)
            if name in fields and name != "extra":
                values.setdefault(name, v)
            else:
                extra[k] = v

        document_id = values.get("document_id") or values.get("filename") or index_name
        if not document_id:
            raise InvalidChunkMetadata("chunk metadata has no documentId")
        chunk_index = _opt_int(values.get("chunk_index"))
        if chunk_index is None:
            raise InvalidChunkMetadata(
                f"chunk metadata for document {document_id!r} has no integer chunkIndex"
            )

        return cls(
            document_id=str(document_id),
            chunk_index=chunk_index,
            page_start=_opt_int(values.get("page_start")),
            page_end=_opt_int(values.get("page_end")),
            total_chunks=_opt_int(values.get("total_chunks")),
            content=_opt_str(values.get("content")) or "",
            summary=_opt_str(values.get("summary")),
            section_number=_opt_str(values.get("section_number")),
            section_title=_opt_str(values.get("section_title")),
            topics=_opt_str(values.get("topics")),
            citation=_opt_str(values.get("citation")),
            filename=_opt_str(values.get("filename")),
            timestamp=_opt_str(values.get("timestamp")),
            extra=extra,
        )


@dataclasses.dataclass(frozen=True)
class CandidateMatch:
    """One similarity-search hit from one index (lower distance = closer)."""

    key: str
    index: str
    distance: Optional[float]
    metadata: ChunkMetadata

    @property
    def sort_distance(self) -> float:
        return 1.0 if self.distance is None else self.distance


@dataclasses.dataclass
class ChunkRecord:
    """A stored chunk in a local index."""

    key: str
    index: str
    metadata: ChunkMetadata


def load_chunks(path: Path | None = None, index_name: str = "local") -> List[ChunkRecord]:
    """
    Load chunks from a JSONL file.

    Each line is either {"key": ..., "metadata": {...}} or a flat object whose
    non-"key" fields are the metadata. An "index" field overrides index_name.
    """
    if path is None:
        path = CHUNKS_PATH
    if not path.exists():
        raise FileNotFoundError(f"chunks file not found at {path}")

    chunks: List[ChunkRecord] = []
    with path.open("r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            obj = json.loads(line)
            index = obj.get("index") or index_name
            if isinstance(obj.get("metadata"), dict):
                raw_meta = obj["metadata"]
            else:
                raw_meta = {k: v for k, v in obj.items() if k not in ("key", "index")}
            chunks.append(
                ChunkRecord(
                    key=str(obj["key"]),
                    index=index,
                    metadata=ChunkMetadata.from_dict(raw_meta, index),
                )
            )
    return chunks

