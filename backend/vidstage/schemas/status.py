"""Processing status view returned to callers."""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict


class StageStatus(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    stage: str
    status: str
    progress: int
    progress_message: Optional[str] = None
    attempts: int
    last_error: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class VariantProgress(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quality: str
    status: str
    progress: int
    progress_message: Optional[str] = None
    error_message: Optional[str] = None


class ProcessingStatus(BaseModel):
    video_id: uuid.UUID
    video_status: str
    overall_status: str
    progress_percentage: int
    master_playlist_path: Optional[str] = None
    jobs: list[StageStatus]
    variants: list[VariantProgress]
