# lifemate/api/v1/jobseekers.py
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, File, UploadFile

from lifemate.api.deps import get_current_jobseeker, get_jobseeker_service
from lifemate.api.v1.responses import ok
from lifemate.api.v1.schemas import LanguageIn, ProjectIn
from lifemate.models.user import User, UserPublic
from lifemate.services.jobseekers import JobSeekerService

router = APIRouter()


async def _read(upload: Optional[UploadFile]):
    """(bytes, filename, content type) of an optional multipart file."""
    if upload is None:
        return b"", "", ""
    data = await upload.read()
    return data, upload.filename or "", upload.content_type or ""


@router.get("/profile")
async def get_profile(
    user: User = Depends(get_current_jobseeker), svc: JobSeekerService = Depends(get_jobseeker_service)
):
    profile = await svc.get_profile(user)
    return ok("Job seeker profile fetched", {"job_seeker": profile, "user": UserPublic.from_user(user)})


@router.put("/profile")
async def update_profile(
    payload: Dict[str, Any] = Body(...),
    user: User = Depends(get_current_jobseeker),
    svc: JobSeekerService = Depends(get_jobseeker_service),
):
    profile, user = await svc.update_profile(user, payload)
    return ok("Job seeker profile updated", {"job_seeker": profile, "user": UserPublic.from_user(user)})


@router.post("/resume")
async def upload_resume(
    file: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_jobseeker),
    svc: JobSeekerService = Depends(get_jobseeker_service),
):
    stored = await svc.upload_resume(user, *await _read(file))
    return ok("Resume uploaded", {"resume": stored})


@router.delete("/resume")
async def delete_resume(
    user: User = Depends(get_current_jobseeker), svc: JobSeekerService = Depends(get_jobseeker_service)
):
    await svc.delete_resume(user)
    return ok("Resume deleted")


@router.post("/cover-letter")
async def upload_cover_letter(
    file: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_jobseeker),
    svc: JobSeekerService = Depends(get_jobseeker_service),
):
    stored = await svc.upload_cover_letter(user, *await _read(file))
    return ok("Cover letter uploaded", {"cover_letter": stored})


@router.delete("/cover-letter")
async def delete_cover_letter(
    user: User = Depends(get_current_jobseeker), svc: JobSeekerService = Depends(get_jobseeker_service)
):
    await svc.delete_cover_letter(user)
    return ok("Cover letter deleted")


@router.post("/documents/{kind}")
async def upload_document(
    kind: str,
    file: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_jobseeker),
    svc: JobSeekerService = Depends(get_jobseeker_service),
):
    record = await svc.upload_document(user, kind, *await _read(file))
    return ok("Document uploaded", {"document": record})


@router.post("/profile-photo")
async def upload_profile_photo(
    file: Optional[UploadFile] = File(None),
    user: User = Depends(get_current_jobseeker),
    svc: JobSeekerService = Depends(get_jobseeker_service),
):
    user = await svc.upload_profile_photo(user, *await _read(file))
    return ok("Profile photo uploaded", {"user": UserPublic.from_user(user)})


@router.post("/projects")
async def add_project(
    payload: ProjectIn,
    user: User = Depends(get_current_jobseeker),
    svc: JobSeekerService = Depends(get_jobseeker_service),
):
    projects = await svc.add_project(user, payload.model_dump(exclude_none=True))
    return ok("Project added successfully", {"projects": projects})


@router.put("/projects/{project_id}")
async def update_project(
    project_id: str,
    payload: ProjectIn,
    user: User = Depends(get_current_jobseeker),
    svc: JobSeekerService = Depends(get_jobseeker_service),
):
    projects = await svc.update_project(user, project_id, payload.model_dump(exclude_unset=True))
    return ok("Project updated successfully", {"projects": projects})


@router.delete("/projects/{project_id}")
async def delete_project(
    project_id: str,
    user: User = Depends(get_current_jobseeker),
    svc: JobSeekerService = Depends(get_jobseeker_service),
):
    projects = await svc.delete_project(user, project_id)
    return ok("Project deleted successfully", {"projects": projects})


@router.post("/languages")
async def add_language(
    payload: LanguageIn,
    user: User = Depends(get_current_jobseeker),
    svc: JobSeekerService = Depends(get_jobseeker_service),
):
    languages = await svc.add_language(user, payload.model_dump(exclude_none=True))
    return ok("Language added successfully", {"languages": languages})


@router.put("/languages/{language_id}")
async def update_language(
    language_id: str,
    payload: LanguageIn,
    user: User = Depends(get_current_jobseeker),
    svc: JobSeekerService = Depends(get_jobseeker_service),
):
    languages = await svc.update_language(user, language_id, payload.model_dump(exclude_unset=True))
    return ok("Language updated successfully", {"languages": languages})


@router.delete("/languages/{language_id}")
async def delete_language(
    language_id: str,
    user: User = Depends(get_current_jobseeker),
    svc: JobSeekerService = Depends(get_jobseeker_service),
):
    languages = await svc.delete_language(user, language_id)
    return ok("Language deleted successfully", {"languages": languages})
