"""
Pydantic models for queue messages, progress events and summary content.
"""
from datetime import date, datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

Priority = Literal["high", "medium", "low"]
ProgressStage = Literal["retrieve", "merge", "summarize", "format", "save", "complete"]


class JobOptions(BaseModel):
    """Free-form options carried with a job."""
    model_config = ConfigDict(extra="allow")

    source: Optional[str] = None


class JobPayload(BaseModel):
    """Queue message for one summarization job."""
    model_config = ConfigDict(populate_by_name=True)

    meeting_id: str = Field(..., alias="meetingId", min_length=1)
    regenerate: bool = False
    options: JobOptions = Field(default_factory=JobOptions)


class ProgressEvent(BaseModel):
    """Progress reported at each stage transition."""
    stage: ProgressStage
    percentage: int = Field(..., ge=0, le=100)
    message: str


class JobResult(BaseModel):
    """Value returned by a completed job."""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    summary_id: str = Field(..., alias="summaryId")
    version: int
    action_items_created: int = Field(..., alias="actionItemsCreated")


class SummarySection(BaseModel):
    title: str = ""
    content: str = ""


class ActionItemDraft(BaseModel):
    """Action item as returned by the model, before it is persisted."""
    title: str
    due_date: Optional[date] = None
    priority: Priority = "medium"


class DecisionItem(BaseModel):
    title: str
    context: str = ""


class RiskItem(BaseModel):
    title: str
    description: str = ""
    severity: Priority = "medium"


class QualityBlock(BaseModel):
    transcript_confidence: float
    summary_score: int = Field(..., ge=0, le=100)
    token_used: Optional[int] = None
    generated_at: datetime


class SummaryContent(BaseModel):
    """Canonical summary shape; every field has an empty default."""
    overview: str = ""
    sections: list[SummarySection] = Field(default_factory=list)
    action_items: list[ActionItemDraft] = Field(default_factory=list)
    decisions: list[DecisionItem] = Field(default_factory=list)
    risks: list[RiskItem] = Field(default_factory=list)


class FormattedSummary(BaseModel):
    """Summary content plus its quality block, ready to be saved."""
    content: SummaryContent
    quality: QualityBlock
