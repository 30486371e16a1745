# lifemate/services/resumes.py
import asyncio
import logging
import re
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from lifemate.core.config import Settings
from lifemate.core.errors import AppError, NotFoundError, UpstreamDeliveryError, ValidationFailedError
from lifemate.core.security import utcnow
from lifemate.models.resume import PROTECTED_RESUME_FIELDS, Resume, ResumeContent, ResumeSummary
from lifemate.models.user import User
from lifemate.repositories import jobseekers as jobseeker_repo
from lifemate.repositories import resumes as resume_repo
from lifemate.services.resume_renderer import render_resume_pdf
from lifemate.services.storage import BlobStorage, StorageError

logger = logging.getLogger(__name__)

RESUME_NOT_FOUND = "Resume not found"


def pdf_file_name(title: Optional[str], resume_id: str, now) -> str:
    """Storage name for a rendered resume; unique per resume and render time."""
    stem = re.sub(r"[^a-zA-Z0-9_-]", "_", title or "resume")
    return f"{stem}_{resume_id}_{int(now.timestamp() * 1000)}.pdf"


def validation_error_from(exc: ValidationError) -> ValidationFailedError:
    errors = [
        {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return ValidationFailedError("Validation failed", errors=errors)


def _content(data: Dict[str, Any]) -> ResumeContent:
    try:
        return ResumeContent(**data)
    except ValidationError as exc:
        raise validation_error_from(exc)


class ResumeService:
    def __init__(self, settings: Settings, storage: BlobStorage, clock=utcnow):
        self.settings = settings
        self.storage = storage
        self.clock = clock

    async def list(self, user_id: str) -> List[ResumeSummary]:
        return await resume_repo.list_for_user(user_id)

    async def get(self, resume_id: str, user_id: str) -> Resume:
        resume = await resume_repo.get(resume_id, user_id)
        if resume is None:
            raise NotFoundError(RESUME_NOT_FOUND)
        return resume

    async def _profile_defaults(self, user: User, data: Dict[str, Any]) -> Dict[str, Any]:
        """Fill a new resume from the job-seeker profile and user record."""
        profile = await jobseeker_repo.find_by_user(user.id)
        if profile is None:
            return data
        given = data.get("personal_info") or {}
        data["personal_info"] = {
            "full_name": user.full_name,
            "email": user.email,
            "phone": user.phone or given.get("phone") or "",
            "linkedin": given.get("linkedin") or "",
            "github": given.get("github") or "",
            "website": given.get("website") or "",
            "address": profile.personal_info.get("address") or given.get("address"),
        }
        for field in ("work_experience", "education", "skills", "certifications"):
            items = getattr(profile, field)
            if items:
                data[field] = items
        if profile.projects:
            data["projects"] = [p.model_dump(exclude={"id"}) for p in profile.projects]
        if profile.languages:
            data["languages"] = [lang.model_dump(exclude={"id"}) for lang in profile.languages]
        if profile.bio and not data.get("summary"):
            data["summary"] = profile.bio
        return data

    async def build(self, user: User, data: Dict[str, Any], auto_populate: bool = False) -> Resume:
        data = {k: v for k, v in data.items() if k not in PROTECTED_RESUME_FIELDS and v is not None}
        if auto_populate:
            data = await self._profile_defaults(user, data)
        content = _content(data)
        resume = await resume_repo.create(user.id, content, self.clock())
        logger.info("Created resume %s for user %s", resume.id, user.id)
        return resume

    async def update(
        self, resume_id: str, user_id: str, changes: Dict[str, Any], regenerate_pdf: bool = False
    ) -> Resume:
        current = await self.get(resume_id, user_id)
        changes = {k: v for k, v in changes.items() if k not in PROTECTED_RESUME_FIELDS}
        changed = set(changes) & set(ResumeContent.model_fields)
        if changed:
            merged = current.model_dump(include=set(ResumeContent.model_fields))
            merged.update({k: changes[k] for k in changed})
            content = _content(merged)
            current = await resume_repo.update(
                resume_id, user_id, content.model_dump(include=changed), self.clock()
            ) or current

        if regenerate_pdf:
            try:
                current = await self.generate_pdf(resume_id, user_id)
            except AppError as exc:
                logger.error("PDF regeneration for resume %s failed: %s", resume_id, exc.message)
        return current

    async def delete(self, resume_id: str, user_id: str) -> None:
        resume = await self.get(resume_id, user_id)
        await resume_repo.delete(resume_id, user_id)
        await self._discard_file(resume.pdf_file_id)

    async def preview(self, resume_id: str, user_id: str) -> Resume:
        resume = await resume_repo.increment_stat(resume_id, user_id, "views")
        if resume is None:
            raise NotFoundError(RESUME_NOT_FOUND)
        return resume

    async def download(self, resume_id: str, user_id: str) -> str:
        resume = await resume_repo.increment_stat(resume_id, user_id, "downloads")
        if resume is None:
            raise NotFoundError(RESUME_NOT_FOUND)
        if not resume.pdf_url:
            resume = await self.generate_pdf(resume_id, user_id)
        return resume.pdf_url

    async def generate_pdf(self, resume_id: str, user_id: str) -> Resume:
        resume = await self.get(resume_id, user_id)
        loop = asyncio.get_running_loop()
        pdf = await loop.run_in_executor(None, render_resume_pdf, resume)

        name = pdf_file_name(resume.title, resume.id, self.clock())
        try:
            stored = await self.storage.upload(pdf, name, self.settings.RESUME_STORAGE_FOLDER, "application/pdf")
        except StorageError as exc:
            logger.error("Upload of %s failed: %s", name, exc)
            raise UpstreamDeliveryError("Failed to store the generated PDF. Please try again.")

        previous = resume.pdf_file_id
        updated = await resume_repo.update(
            resume_id, user_id, {"pdf_url": stored.url, "pdf_file_id": stored.id}, self.clock()
        )
        if updated is None:
            # resume was deleted while rendering
            await self._discard_file(stored.id)
            raise NotFoundError(RESUME_NOT_FOUND)
        if previous and previous != stored.id:
            await self._discard_file(previous)
        logger.info("Generated PDF %s for resume %s (%d bytes)", stored.id, resume_id, stored.size)
        return updated

    async def set_default(self, resume_id: str, user_id: str) -> None:
        if not await resume_repo.set_default(resume_id, user_id, self.clock()):
            raise NotFoundError(RESUME_NOT_FOUND)

    async def _discard_file(self, file_id: Optional[str]) -> None:
        if not file_id:
            return
        try:
            await self.storage.delete(file_id)
        except StorageError as exc:
            logger.warning("Could not delete stored file %s: %s", file_id, exc)
