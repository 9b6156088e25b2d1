from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..utils.validation import normalize_string_list


def _optional_text(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _optional_amount(v: Any) -> int | None:
    """Salary figures arrive as 85000, 85000.0, "85,000", "$85k" or null."""
    if v is None or isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return int(v)
    s = str(v).strip().lower().replace(",", "").replace("$", "").replace("€", "").replace("£", "")
    if not s:
        return None
    multiplier = 1
    if s.endswith("k"):
        multiplier, s = 1000, s[:-1]
    try:
        return int(float(s) * multiplier)
    except ValueError:
        return None


class JobListingExtraction(BaseModel):
    """
    Job fields extracted from pasted listing text. Lenient: anything the model leaves
    out becomes null / an empty list, list fields are normalized once here.
    """
    model_config = ConfigDict(extra="ignore")

    company: str | None = None
    title: str | None = None
    location: str | None = None
    description: str | None = None
    job_type: str | None = None
    salary_range_min: int | None = None
    salary_range_max: int | None = None
    salary_currency: str | None = None
    salary_period: str | None = None
    hard_skills: list[str] = Field(default_factory=list)
    soft_skills: list[str] = Field(default_factory=list)
    requirements: list[str] = Field(default_factory=list)
    benefits: list[str] = Field(default_factory=list)

    @field_validator(
        "company", "title", "location", "description", "job_type", "salary_currency", "salary_period",
        mode="before",
    )
    @classmethod
    def _text(cls, v: Any) -> str | None:
        return _optional_text(v)

    @field_validator("salary_range_min", "salary_range_max", mode="before")
    @classmethod
    def _amount(cls, v: Any) -> int | None:
        return _optional_amount(v)

    @field_validator("hard_skills", "soft_skills", "requirements", "benefits", mode="before")
    @classmethod
    def _lists(cls, v: Any) -> list[str]:
        return normalize_string_list(v)

    def confidence(self) -> dict[str, float]:
        present = 0.1
        return {
            "overall": 0.9,
            "company": 0.95 if self.company else present,
            "title": 0.95 if self.title else present,
            "location": 0.9 if self.location else present,
            "job_type": 0.9 if self.job_type else present,
            "salary": 0.8 if (self.salary_range_min or self.salary_range_max) else present,
            "requirements": 0.85 if self.requirements else present,
            "benefits": 0.85 if self.benefits else present,
        }
