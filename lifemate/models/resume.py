# lifemate/models/resume.py
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _Entry(BaseModel):
    # stored documents may carry keys this service does not render
    model_config = ConfigDict(extra="allow")

    is_visible: bool = True


class Address(BaseModel):
    model_config = ConfigDict(extra="allow")

    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    zip_code: Optional[str] = None


class PersonalInfo(BaseModel):
    model_config = ConfigDict(extra="allow")

    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    linkedin: Optional[str] = None
    github: Optional[str] = None
    website: Optional[str] = None
    address: Optional[Address] = None


class WorkExperience(_Entry):
    position: Optional[str] = None
    company: Optional[str] = None
    location: Optional[str] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    is_current: bool = False
    description: Optional[str] = None
    achievements: List[str] = Field(default_factory=list)


class Education(_Entry):
    degree: Optional[str] = None
    field: Optional[str] = None
    institution: Optional[str] = None
    year_of_completion: Optional[int] = None
    grade: Optional[str] = None


class Skill(_Entry):
    name: str
    level: Optional[str] = None


class Certification(_Entry):
    name: str
    issuing_organization: Optional[str] = None
    issue_date: Optional[datetime] = None
    expiry_date: Optional[datetime] = None
    credential_id: Optional[str] = None


class Project(_Entry):
    title: str
    description: Optional[str] = None
    technologies: List[str] = Field(default_factory=list)
    url: Optional[str] = None


class Language(_Entry):
    name: str
    proficiency: Optional[str] = None


class CustomSection(_Entry):
    title: Optional[str] = None
    content: Optional[str] = None
    items: List[str] = Field(default_factory=list)


class Styling(BaseModel):
    primary_color: str = "#000000"
    accent_color: str = "#4169E1"
    font_size: float = 10


class ResumeStats(BaseModel):
    views: int = 0
    downloads: int = 0


class ResumeContent(BaseModel):
    """Everything a client may write on a resume."""
    model_config = ConfigDict(extra="ignore")

    title: str = "My Resume"
    personal_info: Optional[PersonalInfo] = None
    summary: Optional[str] = None
    work_experience: List[WorkExperience] = Field(default_factory=list)
    education: List[Education] = Field(default_factory=list)
    skills: List[Skill] = Field(default_factory=list)
    certifications: List[Certification] = Field(default_factory=list)
    projects: List[Project] = Field(default_factory=list)
    languages: List[Language] = Field(default_factory=list)
    custom_sections: List[CustomSection] = Field(default_factory=list)
    styling: Styling = Field(default_factory=Styling)


class Resume(ResumeContent):
    id: str
    user_id: str
    pdf_url: Optional[str] = None
    pdf_file_id: Optional[str] = None
    stats: ResumeStats = Field(default_factory=ResumeStats)
    is_default: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ResumeSummary(BaseModel):
    id: str
    title: str
    personal_info: Optional[PersonalInfo] = None
    is_default: bool = False
    stats: ResumeStats = Field(default_factory=ResumeStats)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# fields a resume update may never touch
PROTECTED_RESUME_FIELDS = frozenset(
    {"id", "_id", "user_id", "created_at", "updated_at", "stats", "pdf_url", "pdf_file_id", "is_default"}
)
