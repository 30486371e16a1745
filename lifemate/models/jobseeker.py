# lifemate/models/jobseeker.py
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class StoredFile(BaseModel):
    """Reference to an uploaded document in blob storage."""
    url: str
    filename: Optional[str] = None
    file_id: str
    bytes: int = 0
    uploaded_at: datetime


class ProjectItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    title: str
    description: Optional[str] = None
    technologies: List[str] = Field(default_factory=list)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    url: Optional[str] = None
    role: Optional[str] = None


class LanguageItem(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: Optional[str] = None
    name: str
    proficiency: str = "Intermediate"


class JobSeekerProfile(BaseModel):
    # nested sections are free-form documents edited wholesale by the client
    model_config = ConfigDict(extra="allow")

    id: str
    user_id: str
    personal_info: Dict[str, Any] = Field(default_factory=dict)
    professional_info: Dict[str, Any] = Field(default_factory=dict)
    documents: Dict[str, Any] = Field(default_factory=dict)
    title: Optional[str] = None
    bio: Optional[str] = None
    specializations: List[str] = Field(default_factory=list)
    experience: Dict[str, Any] = Field(default_factory=dict)
    education: List[Dict[str, Any]] = Field(default_factory=list)
    work_experience: List[Dict[str, Any]] = Field(default_factory=list)
    skills: List[Dict[str, Any]] = Field(default_factory=list)
    certifications: List[Dict[str, Any]] = Field(default_factory=list)
    job_preferences: Dict[str, Any] = Field(default_factory=dict)
    privacy_settings: Dict[str, Any] = Field(default_factory=dict)
    resume: Optional[StoredFile] = None
    cover_letter: Optional[StoredFile] = None
    projects: List[ProjectItem] = Field(default_factory=list)
    languages: List[LanguageItem] = Field(default_factory=list)
    profile_completion: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# keys PUT /profile may replace
PROFILE_UPDATABLE_FIELDS = (
    "title",
    "bio",
    "specializations",
    "experience",
    "education",
    "work_experience",
    "skills",
    "certifications",
    "job_preferences",
    "privacy_settings",
    "personal_info",
    "professional_info",
    "documents",
)

# kind -> documents sub-key for KYC uploads
KYC_DOCUMENT_KINDS = {
    "pan-card": "pan_card_image",
    "aadhaar-card": "aadhaar_card_image",
    "aadhaar-card-front": "aadhaar_card_front_image",
    "aadhaar-card-back": "aadhaar_card_back_image",
}
