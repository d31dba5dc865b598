"""Schemas exchanged with the job search and AI matching collaborators"""

from typing import Optional, List
from datetime import datetime
from pydantic import BaseModel, Field, field_validator


class NormalizedJob(BaseModel):
    """A posting as returned by any job source"""
    title: str = Field(..., description="Job title")
    company: str = Field(..., description="Hiring company")
    description: str = Field("", description="Full posting text")
    url: Optional[str] = Field(None, description="Apply or posting URL")
    location: Optional[str] = Field(None, description="Human-readable location")
    salary_range: Optional[str] = Field(None, description="Salary range, if published")
    employment_type: Optional[str] = Field(None, description="FULL_TIME, PART_TIME, CONTRACT or INTERNSHIP")
    source: str = Field("unknown", description="Job source name")
    source_job_id: Optional[str] = Field(None, description="The source's own posting id")
    posted_at: Optional[datetime] = Field(None, description="When the posting went live")


class JobSearchFilters(BaseModel):
    """Optional narrowing applied to a job search"""
    employment_types: List[str] = Field(default_factory=list)
    remote_only: bool = False
    date_posted: Optional[str] = Field(None, description="all, today, 3days, week or month")
    num_pages: int = Field(1, ge=1, le=10)


class SkillSummary(BaseModel):
    name: str
    proficiency: Optional[str] = None
    years_used: float = 0


class ProfileSummary(BaseModel):
    """The slice of a profile sent to the AI matcher"""
    full_name: str
    job_title_prefs: List[str] = Field(default_factory=list)
    years_experience: int = 0
    skills: List[SkillSummary] = Field(default_factory=list)
    preferred_locations: List[str] = Field(default_factory=list)
    employment_types: List[str] = Field(default_factory=list)


class JobDescription(BaseModel):
    """The slice of a listing sent to the AI matcher"""
    title: str
    company: str
    description: str = ""
    requirements: List[str] = Field(default_factory=list)
    location: str = ""
    salary_range: str = ""
    employment_type: str = "FULL_TIME"


class MatchAnalysis(BaseModel):
    """AI verdict on how well a profile fits a listing"""
    match_score: float = Field(..., description="0.0 (no fit) to 1.0 (perfect fit)")
    reasons: List[str] = Field(default_factory=list)
    concerns: List[str] = Field(default_factory=list)
    recommendation: str = ""

    @field_validator("match_score", mode="before")
    @classmethod
    def clamp_score(cls, value):
        score = float(value)
        # Some models answer on a 0-100 scale
        if score > 1:
            score = score / 100
        return min(max(score, 0.0), 1.0)
