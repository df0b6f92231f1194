"""Job payloads carried by the queue.

The set is closed: every payload has a literal ``kind`` tag and the
``JobMessage`` union discriminates on it, so a serialized job can be
validated back into the right model and routed through the dispatch table.
"""

import uuid
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from vidstage.config import QualityProfile


class _Job(BaseModel):
    job_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    video_id: uuid.UUID


class IngestVideo(_Job):
    kind: Literal["ingest"] = "ingest"
    media_ref: str
    language_hint: Optional[str] = None


class TranscribeVideo(_Job):
    kind: Literal["transcribe"] = "transcribe"
    processing_job_id: uuid.UUID
    media_ref: str
    language_hint: Optional[str] = None


class GenerateThumbnail(_Job):
    kind: Literal["thumbnail"] = "thumbnail"
    processing_job_id: uuid.UUID
    media_ref: str


class ModerateContent(_Job):
    kind: Literal["moderate"] = "moderate"
    processing_job_id: uuid.UUID


class EncodeVariant(_Job):
    kind: Literal["encode_variant"] = "encode_variant"
    variant_id: uuid.UUID
    media_ref: str
    profile: QualityProfile


class GenerateMasterPlaylist(_Job):
    kind: Literal["master_playlist"] = "master_playlist"
    attempt: int = 1


class IndexVideo(_Job):
    kind: Literal["index"] = "index"
    processing_job_id: uuid.UUID


class ExtractHighlights(_Job):
    kind: Literal["highlights"] = "highlights"
    processing_job_id: uuid.UUID


JobMessage = Annotated[
    Union[
        IngestVideo,
        TranscribeVideo,
        GenerateThumbnail,
        ModerateContent,
        EncodeVariant,
        GenerateMasterPlaylist,
        IndexVideo,
        ExtractHighlights,
    ],
    Field(discriminator="kind"),
]

job_message_adapter: TypeAdapter[JobMessage] = TypeAdapter(JobMessage)


def parse_job(data: dict | str | bytes) -> JobMessage:
    """Validate a serialized job back into its payload model."""
    if isinstance(data, (str, bytes)):
        return job_message_adapter.validate_json(data)
    return job_message_adapter.validate_python(data)
