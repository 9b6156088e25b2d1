"""
Shape of a completed scan's ``results`` blob.

A response missing any field, with a score outside 0-100 or a feedback status
outside pass/fail/warning is rejected as a whole rather than partially accepted.
Boundary scores (0 and 100) are valid.
"""
from typing import Annotated, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictInt

# No coercion: "85", 85.0 and true are not scores.
Score = Annotated[StrictInt, Field(ge=0, le=100)]
NonEmptyText = Annotated[str, Field(min_length=1)]
FeedbackStatus = Literal["pass", "fail", "warning"]


class FeedbackItem(BaseModel):
    issue: NonEmptyText
    status: FeedbackStatus
    tip: str | None = None


class CategoryScores(BaseModel):
    searchability: Score
    hardSkills: Score
    softSkills: Score
    recruiterTips: Score
    formatting: Score


class CategoryFeedback(BaseModel):
    searchability: list[FeedbackItem]
    contactInfo: list[FeedbackItem]
    summary: list[FeedbackItem]
    sectionHeadings: list[FeedbackItem]
    jobTitleMatch: list[FeedbackItem]
    dateFormatting: list[FeedbackItem]


class ScanResult(BaseModel):
    model_config = ConfigDict(extra="ignore")

    overallMatch: NonEmptyText
    hardSkills: NonEmptyText
    softSkills: NonEmptyText
    experienceMatch: NonEmptyText
    qualifications: NonEmptyText
    missingKeywords: NonEmptyText
    matchScore: Score
    categoryScores: CategoryScores
    categoryFeedback: CategoryFeedback
