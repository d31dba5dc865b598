"""Job listings discovered by scans and the applications made to them"""

from sqlalchemy import Column, String, Text, Float, Boolean, ForeignKey, UniqueConstraint, Enum as SQLEnum
from applyflow.core.database import Base
from applyflow.models.base import TimestampMixin, new_id
import enum


class JobListing(Base, TimestampMixin):
    """A posting fetched from a job board for one user"""

    __tablename__ = "job_listings"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=True, index=True)
    title = Column(String(255), nullable=False, index=True)
    company = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    url = Column(String(1000), nullable=True)
    location = Column(String(255), nullable=True)
    salary_range = Column(String(100), nullable=True)
    employment_type = Column(String(32), nullable=True)
    source = Column(String(64), nullable=False, default="unknown")
    source_job_id = Column(String(255), nullable=True, index=True)
    match_score = Column(Float, nullable=True)  # 0.0 to 1.0
    is_processed = Column(Boolean, nullable=False, default=False)
    applied_to = Column(Boolean, nullable=False, default=False)

    def __repr__(self):
        return f"<JobListing(id={self.id}, title={self.title}, company={self.company})>"


class ApplicationStatus(str, enum.Enum):
    """Application status enumeration"""
    SUBMITTED = "SUBMITTED"
    WITHDRAWN = "WITHDRAWN"


class Application(Base, TimestampMixin):
    """A submitted application, one per user and listing"""

    __tablename__ = "applications"

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(64), nullable=False, index=True)
    job_listing_id = Column(String(36), ForeignKey("job_listings.id", ondelete="SET NULL"), nullable=True)
    company = Column(String(255), nullable=False)
    job_title = Column(String(255), nullable=False)
    status = Column(
        SQLEnum(ApplicationStatus, name="applicationstatus", native_enum=False, length=16),
        nullable=False,
        default=ApplicationStatus.SUBMITTED,
    )
    match_score = Column(Float, nullable=True)

    __table_args__ = (
        UniqueConstraint("user_id", "job_listing_id", name="uq_application_user_listing"),
    )

    def __repr__(self):
        return f"<Application(id={self.id}, user_id={self.user_id}, job_title={self.job_title})>"
