"""Candidate profile and auto-apply preferences"""

from sqlalchemy import Column, String, Integer, Float, Boolean, ForeignKey
from sqlalchemy.orm import relationship
from applyflow.core.database import Base
from applyflow.models.base import TimestampMixin, UTCDateTime, JSONType, new_id


class Profile(Base, TimestampMixin):
    """Job seeker profile used as input to AI matching"""

    __tablename__ = "profiles"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, unique=True, index=True)
    email = Column(String(255), nullable=True)
    full_name = Column(String(255), nullable=False)
    job_title_prefs = Column(JSONType, nullable=False, default=list)
    years_experience = Column(Integer, nullable=True)
    skills = Column(JSONType, nullable=False, default=list)  # [{"name", "proficiency", "years_used"}]
    preferred_locations = Column(JSONType, nullable=False, default=list)
    employment_types = Column(JSONType, nullable=False, default=list)

    auto_apply_settings = relationship(
        "AutoApplySettings",
        back_populates="profile",
        uselist=False,
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Profile(id={self.id}, user_id={self.user_id})>"


class AutoApplySettings(Base, TimestampMixin):
    """Per-user scanning cadence, match thresholds and filters"""

    __tablename__ = "auto_apply_settings"

    id = Column(String(36), primary_key=True, default=new_id)
    profile_id = Column(String(36), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, unique=True)

    is_enabled = Column(Boolean, nullable=False, default=True)
    auto_scan_enabled = Column(Boolean, nullable=False, default=False)
    scan_frequency_hours = Column(Integer, nullable=False, default=4)
    last_scan_at = Column(UTCDateTime, nullable=True)

    min_match_score = Column(Float, nullable=False, default=0.8)  # auto-apply threshold
    notify_min_score = Column(Float, nullable=False, default=0.6)
    auto_apply_enabled = Column(Boolean, nullable=False, default=False)
    require_approval = Column(Boolean, nullable=False, default=True)
    notify_on_match = Column(Boolean, nullable=False, default=True)
    review_timeout_hours = Column(Integer, nullable=True)

    max_applications_per_day = Column(Integer, nullable=False, default=10)
    excluded_companies = Column(JSONType, nullable=False, default=list)
    excluded_keywords = Column(JSONType, nullable=False, default=list)
    require_salary_range = Column(Boolean, nullable=False, default=False)

    profile = relationship("Profile", back_populates="auto_apply_settings")

    def __repr__(self):
        return f"<AutoApplySettings(profile_id={self.profile_id}, auto_scan_enabled={self.auto_scan_enabled})>"
