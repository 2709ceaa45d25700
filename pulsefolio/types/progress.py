from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class ProgressStatus(str, Enum):
    IDLE = "idle"
    LOADING = "loading"
    COMPLETE = "complete"
    ERROR = "error"


class LoadingProgress(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    current_batch: int = Field(default=0, alias="currentBatch")
    total_batches: int = Field(default=0, alias="totalBatches")
    status: ProgressStatus = Field(default=ProgressStatus.IDLE)
    message: str = Field(default="")
    address: Optional[str] = Field(default=None, description="Wallet the progress belongs to")
    last_updated: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        alias="lastUpdated",
    )


class BatchState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"


class BackgroundBatchProgress(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    is_active: bool = Field(alias="isActive")
    total_tokens: int = Field(alias="totalTokens")
    completed_tokens: int = Field(alias="completedTokens")
    last_update: float = Field(alias="lastUpdate", description="Clock reading of the update, seconds")
    state: BatchState = Field(default=BatchState.ACTIVE)
