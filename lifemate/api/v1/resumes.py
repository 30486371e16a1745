# lifemate/api/v1/resumes.py
from fastapi import APIRouter, Depends, status

from lifemate.api.deps import get_current_user, get_resume_service
from lifemate.api.v1.responses import ok
from lifemate.api.v1.schemas import ResumeIn
from lifemate.models.user import User
from lifemate.services.resumes import ResumeService

router = APIRouter()


@router.get("")
async def list_resumes(user: User = Depends(get_current_user), svc: ResumeService = Depends(get_resume_service)):
    resumes = await svc.list(user.id)
    return ok("Resumes fetched successfully", {"resumes": resumes})


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_resume(
    payload: ResumeIn,
    user: User = Depends(get_current_user),
    svc: ResumeService = Depends(get_resume_service),
):
    resume = await svc.build(user, payload.content(), auto_populate=payload.auto_populate)
    return ok("Resume created successfully", {"resume": resume})


@router.get("/{resume_id}")
async def get_resume(
    resume_id: str, user: User = Depends(get_current_user), svc: ResumeService = Depends(get_resume_service)
):
    return ok("Resume fetched successfully", {"resume": await svc.get(resume_id, user.id)})


@router.put("/{resume_id}")
async def update_resume(
    resume_id: str,
    payload: ResumeIn,
    user: User = Depends(get_current_user),
    svc: ResumeService = Depends(get_resume_service),
):
    resume = await svc.update(resume_id, user.id, payload.content(), regenerate_pdf=payload.regenerate_pdf)
    return ok("Resume updated successfully", {"resume": resume})


@router.delete("/{resume_id}")
async def delete_resume(
    resume_id: str, user: User = Depends(get_current_user), svc: ResumeService = Depends(get_resume_service)
):
    await svc.delete(resume_id, user.id)
    return ok("Resume deleted successfully")


@router.get("/{resume_id}/preview")
async def preview_resume(
    resume_id: str, user: User = Depends(get_current_user), svc: ResumeService = Depends(get_resume_service)
):
    return ok("Resume preview loaded", {"resume": await svc.preview(resume_id, user.id)})


@router.get("/{resume_id}/download")
async def download_resume(
    resume_id: str, user: User = Depends(get_current_user), svc: ResumeService = Depends(get_resume_service)
):
    url = await svc.download(resume_id, user.id)
    return ok("Resume download generated", {"pdf_url": url})


@router.post("/{resume_id}/generate-pdf")
async def generate_pdf(
    resume_id: str, user: User = Depends(get_current_user), svc: ResumeService = Depends(get_resume_service)
):
    resume = await svc.generate_pdf(resume_id, user.id)
    return ok("PDF generated successfully", {"pdf_url": resume.pdf_url, "resume": resume})


@router.patch("/{resume_id}/default")
async def set_default_resume(
    resume_id: str, user: User = Depends(get_current_user), svc: ResumeService = Depends(get_resume_service)
):
    await svc.set_default(resume_id, user.id)
    return ok("Resume set as default")
