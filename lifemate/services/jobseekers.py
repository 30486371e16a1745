# lifemate/services/jobseekers.py
"""
Job-seeker profile: whitelisted profile edits, document uploads and the
project / language lists used by the resume builder.
"""
import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from lifemate.core.config import Settings
from lifemate.core.errors import NotFoundError, UpstreamDeliveryError, ValidationFailedError
from lifemate.core.security import PHONE_PATTERN, utcnow
from lifemate.models.jobseeker import (
    KYC_DOCUMENT_KINDS,
    PROFILE_UPDATABLE_FIELDS,
    JobSeekerProfile,
    LanguageItem,
    ProjectItem,
    StoredFile,
)
from lifemate.models.user import User
from lifemate.repositories import jobseekers as jobseeker_repo
from lifemate.repositories import users as user_repo
from lifemate.services.resumes import validation_error_from
from lifemate.services.storage import BlobStorage, StorageError, StoredObject

logger = logging.getLogger(__name__)

PROFILE_NOT_FOUND = "Job seeker profile not found"

# sections that may arrive as JSON strings from multipart forms
_STRUCTURED_FIELDS = set(PROFILE_UPDATABLE_FIELDS) - {"title", "bio"}
_PRIMARY_CONTACT_KEYS = ("email", "phone", "primary_email", "primary_phone")
DEFAULT_STATE = "Maharashtra"
DEFAULT_COUNTRY = "India"


def split_full_name(full_name: Optional[str]) -> Tuple[str, str]:
    value = " ".join(str(full_name or "").split())
    if not value:
        return "", ""
    parts = value.split(" ")
    if len(parts) == 1:
        return parts[0], "User"
    return " ".join(parts[:-1]), parts[-1]


def _parse_structured(key: str, value: Any) -> Any:
    if not isinstance(value, str) or key not in _STRUCTURED_FIELDS:
        return value
    try:
        return json.loads(value)
    except ValueError:
        if key == "experience":
            try:
                return float(value)
            except ValueError:
                pass
        raise ValidationFailedError.for_field(key, f"Invalid value for {key}")


def normalize_profile_field(key: str, value: Any) -> Any:
    value = _parse_structured(key, value)

    if key == "experience" and isinstance(value, (int, float)) and not isinstance(value, bool):
        value = {"total_years": value}

    if key == "personal_info" and isinstance(value, dict):
        # primary email/phone belong to the user record
        value = {k: v for k, v in value.items() if k not in _PRIMARY_CONTACT_KEYS}

    if key == "education" and isinstance(value, list):
        value = [_coerce_years(item) for item in value]

    if key == "work_experience" and isinstance(value, list):
        value = [_sync_organization(item) for item in value]

    if key == "professional_info" and isinstance(value, dict):
        subs = value.get("doctor_sub_specialties")
        if not isinstance(subs, list):
            subs = [value["doctor_sub_specialty"]] if value.get("doctor_sub_specialty") else []
        value = {**value, "doctor_sub_specialties": subs,
                 "doctor_sub_specialty": (subs[0] if subs else value.get("doctor_sub_specialty") or "")}

    if key == "job_preferences" and isinstance(value, dict):
        locations = value.get("preferred_locations")
        cleaned = []
        for loc in locations if isinstance(locations, list) else []:
            loc = loc if isinstance(loc, dict) else {}
            city = str(loc.get("city") or "").strip()
            if city:
                cleaned.append({
                    "city": city,
                    "state": str(loc.get("state") or DEFAULT_STATE).strip(),
                    "country": str(loc.get("country") or DEFAULT_COUNTRY).strip(),
                })
        value = {**value, "preferred_locations": cleaned}

    return value


def _coerce_years(item):
    if not isinstance(item, dict):
        return item
    item = dict(item)
    for key in ("year_of_completion", "start_year"):
        if item.get(key):
            try:
                item[key] = int(item[key])
            except (TypeError, ValueError):
                raise ValidationFailedError.for_field(f"education.{key}", "Year must be a number")
    return item


def _sync_organization(item):
    if not isinstance(item, dict):
        return item
    organization = item.get("organization") or item.get("company")
    return {**item, "organization": organization, "company": organization}


def derived_fields(professional_info: Dict[str, Any]) -> Dict[str, Any]:
    """title and specializations follow the professional info."""
    out: Dict[str, Any] = {}
    category = professional_info.get("category")
    if category:
        out["title"] = (professional_info.get("other_category") or "Other") if category == "Other" else category
    specs = professional_info.get("specifications")
    specs = specs if isinstance(specs, list) else []
    subs = professional_info.get("doctor_sub_specialties") or []
    merged: List[str] = []
    for value in [*specs, *subs]:
        if value and value not in merged:
            merged.append(value)
    out["specializations"] = merged
    return out


def profile_completion(profile: Dict[str, Any], has_profile_image: bool) -> int:
    checks = [
        bool(profile.get("title") or (profile.get("professional_info") or {}).get("category")),
        bool(profile.get("bio")),
        bool(profile.get("specializations")),
        (profile.get("experience") or {}).get("total_years") is not None,
        bool(profile.get("education")),
        bool(profile.get("work_experience")),
        bool(profile.get("skills")),
        bool((profile.get("job_preferences") or {}).get("preferred_locations")),
        bool((profile.get("resume") or {}).get("url")),
        has_profile_image,
    ]
    return sum(10 for ok in checks if ok)


class JobSeekerService:
    def __init__(self, settings: Settings, storage: BlobStorage, clock=utcnow):
        self.settings = settings
        self.storage = storage
        self.clock = clock

    async def get_profile(self, user: User) -> JobSeekerProfile:
        profile = await jobseeker_repo.find_by_user(user.id)
        if profile is None:
            raise NotFoundError(PROFILE_NOT_FOUND)
        return profile

    async def update_profile(self, user: User, payload: Dict[str, Any]) -> Tuple[JobSeekerProfile, User]:
        profile = await self.get_profile(user)
        if isinstance(payload.get("profile"), str):
            try:
                payload = json.loads(payload["profile"])
            except ValueError:
                raise ValidationFailedError("Invalid profile payload")
            if not isinstance(payload, dict):
                raise ValidationFailedError("Invalid profile payload")

        fields: Dict[str, Any] = {}
        for key in PROFILE_UPDATABLE_FIELDS:
            if key in payload and payload[key] is not None:
                fields[key] = normalize_profile_field(key, payload[key])
        if isinstance(fields.get("professional_info"), dict):
            fields.update(derived_fields(fields["professional_info"]))

        user_changes = self._user_changes(payload)

        merged = {**profile.model_dump(), **fields}
        fields["profile_completion"] = profile_completion(
            merged, bool(user_changes.get("profile_image") or user.profile_image)
        )
        try:
            JobSeekerProfile(**merged)
        except ValidationError as exc:
            raise validation_error_from(exc)

        now = self.clock()
        profile = await jobseeker_repo.set_fields(user.id, fields, now) or profile
        if user_changes:
            user = await user_repo.update_fields(user.id, user_changes, now) or user
        return profile, user

    def _user_changes(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        nested = payload.get("user") if isinstance(payload.get("user"), dict) else {}
        changes: Dict[str, Any] = {}
        full_name = payload.get("full_name") or nested.get("full_name")
        if full_name:
            first, last = split_full_name(full_name)
            if first:
                changes["first_name"] = first
            if last:
                changes["last_name"] = last
        for key in ("first_name", "last_name"):
            value = nested.get(key, payload.get(key))
            if isinstance(value, str) and value.strip():
                changes[key] = value.strip()
        phone = nested.get("phone", payload.get("phone"))
        if isinstance(phone, str):
            phone = phone.strip()
            if phone and not PHONE_PATTERN.match(phone):
                raise ValidationFailedError.for_field("phone", "Please enter a valid phone number")
            changes["phone"] = phone or None
        return changes

    # --- uploads -------------------------------------------------------------

    async def _store(self, data: bytes, name: str, folder: str, mime_type: str) -> StoredObject:
        try:
            return await self.storage.upload(data, name, folder, mime_type)
        except StorageError as exc:
            logger.error("Upload of %s failed: %s", name, exc)
            raise UpstreamDeliveryError("File upload failed. Please try again.")

    async def _discard(self, file_id: Optional[str]) -> None:
        if not file_id:
            return
        try:
            await self.storage.delete(file_id)
        except StorageError as exc:
            logger.warning("Could not delete stored file %s: %s", file_id, exc)

    def _folder(self, profile: JobSeekerProfile, sub: str = "") -> str:
        base = f"{self.settings.DOCUMENT_STORAGE_FOLDER}/{profile.id}"
        return f"{base}/{sub}" if sub else base

    def _stamp(self) -> int:
        return int(self.clock().timestamp() * 1000)

    def _stored_file(self, stored: StoredObject, filename: Optional[str]) -> Dict[str, Any]:
        return StoredFile(
            url=stored.url, filename=filename, file_id=stored.id, bytes=stored.size, uploaded_at=self.clock()
        ).model_dump()

    async def upload_resume(self, user: User, data: bytes, filename: str, content_type: str) -> StoredFile:
        profile = await self.get_profile(user)
        if not data:
            raise ValidationFailedError.for_field("file", "No resume file uploaded")
        if content_type != "application/pdf":
            raise ValidationFailedError.for_field("file", "Only PDF files are allowed for resume upload")
        stored = await self._store(data, f"resume_{profile.id}_{self._stamp()}.pdf", self._folder(profile), content_type)
        previous = profile.resume.file_id if profile.resume else None
        updated = await jobseeker_repo.set_fields(
            user.id, {"resume": self._stored_file(stored, filename)}, self.clock()
        )
        await self._discard(previous)
        return updated.resume

    async def delete_resume(self, user: User) -> None:
        profile = await self.get_profile(user)
        await jobseeker_repo.unset_field(user.id, "resume", self.clock())
        await self._discard(profile.resume.file_id if profile.resume else None)

    async def upload_cover_letter(self, user: User, data: bytes, filename: str, content_type: str) -> StoredFile:
        profile = await self.get_profile(user)
        if not data:
            raise ValidationFailedError.for_field("file", "No cover letter file uploaded")
        stored = await self._store(
            data, f"cover_letter_{profile.id}_{self._stamp()}_{filename or 'file'}", self._folder(profile), content_type
        )
        previous = profile.cover_letter.file_id if profile.cover_letter else None
        updated = await jobseeker_repo.set_fields(
            user.id, {"cover_letter": self._stored_file(stored, filename)}, self.clock()
        )
        await self._discard(previous)
        return updated.cover_letter

    async def delete_cover_letter(self, user: User) -> None:
        profile = await self.get_profile(user)
        await jobseeker_repo.unset_field(user.id, "cover_letter", self.clock())
        await self._discard(profile.cover_letter.file_id if profile.cover_letter else None)

    async def upload_document(
        self, user: User, kind: str, data: bytes, filename: str, content_type: str
    ) -> Dict[str, Any]:
        """KYC image upload: PAN card or Aadhaar card (front/back)."""
        field = KYC_DOCUMENT_KINDS.get(kind)
        if field is None:
            raise NotFoundError(f"Unknown document type: {kind}")
        if not data:
            raise ValidationFailedError.for_field("file", "No document file uploaded")
        if not (content_type or "").startswith("image/"):
            raise ValidationFailedError.for_field("file", "Only image files are allowed for documents")
        profile = await self.get_profile(user)
        stored = await self._store(
            data, f"{field}_{self._stamp()}_{filename or 'image'}", self._folder(profile, "documents"), content_type
        )
        record = self._stored_file(stored, filename)
        updates = {f"documents.{field}": record}
        if field == "aadhaar_card_image":
            # older screens read the front image
            updates["documents.aadhaar_card_front_image"] = record
        previous = (profile.documents.get(field) or {}).get("file_id")
        await jobseeker_repo.set_fields(user.id, updates, self.clock())
        await self._discard(previous)
        return record

    async def upload_profile_photo(self, user: User, data: bytes, filename: str, content_type: str) -> User:
        if not data:
            raise ValidationFailedError.for_field("file", "No profile photo uploaded")
        if not (content_type or "").startswith("image/"):
            raise ValidationFailedError.for_field("file", "Only image files are allowed for profile photo")
        profile = await self.get_profile(user)
        ext = filename[filename.rfind("."):] if filename and "." in filename else ".jpg"
        stored = await self._store(
            data, f"profile_photo_{profile.id}_{self._stamp()}{ext}", self._folder(profile), content_type
        )
        previous = user.profile_image_file_id
        updated = await user_repo.update_fields(
            user.id, {"profile_image": stored.url, "profile_image_file_id": stored.id}, self.clock()
        )
        await self._discard(previous)
        return updated or user

    # --- projects & languages ------------------------------------------------

    async def add_project(self, user: User, data: Dict[str, Any]) -> List[ProjectItem]:
        await self.get_profile(user)
        if not data.get("title"):
            raise ValidationFailedError.for_field("title", "Project title is required")
        item = self._validated(ProjectItem, data)
        profile = await jobseeker_repo.push_item(user.id, "projects", item, self.clock())
        return profile.projects

    async def update_project(self, user: User, project_id: str, data: Dict[str, Any]) -> List[ProjectItem]:
        await self.get_profile(user)
        changes = self._changes(ProjectItem, data)
        if "title" in changes and not changes["title"]:
            raise ValidationFailedError.for_field("title", "Project title is required")
        profile = await jobseeker_repo.update_item(user.id, "projects", project_id, changes, self.clock())
        if profile is None:
            raise NotFoundError("Project not found")
        return profile.projects

    async def delete_project(self, user: User, project_id: str) -> List[ProjectItem]:
        await self.get_profile(user)
        profile = await jobseeker_repo.pull_item(user.id, "projects", project_id, self.clock())
        if profile is None:
            raise NotFoundError("Project not found")
        return profile.projects

    async def add_language(self, user: User, data: Dict[str, Any]) -> List[LanguageItem]:
        await self.get_profile(user)
        if not data.get("name"):
            raise ValidationFailedError.for_field("name", "Language name is required")
        item = self._validated(LanguageItem, {**data, "proficiency": data.get("proficiency") or "Intermediate"})
        profile = await jobseeker_repo.push_item(user.id, "languages", item, self.clock())
        return profile.languages

    async def update_language(self, user: User, language_id: str, data: Dict[str, Any]) -> List[LanguageItem]:
        await self.get_profile(user)
        changes = self._changes(LanguageItem, data)
        if "name" in changes and not changes["name"]:
            raise ValidationFailedError.for_field("name", "Language name is required")
        profile = await jobseeker_repo.update_item(user.id, "languages", language_id, changes, self.clock())
        if profile is None:
            raise NotFoundError("Language not found")
        return profile.languages

    async def delete_language(self, user: User, language_id: str) -> List[LanguageItem]:
        await self.get_profile(user)
        profile = await jobseeker_repo.pull_item(user.id, "languages", language_id, self.clock())
        if profile is None:
            raise NotFoundError("Language not found")
        return profile.languages

    @staticmethod
    def _validated(model, data: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return model(**data).model_dump(exclude={"id"})
        except ValidationError as exc:
            raise validation_error_from(exc)

    @staticmethod
    def _changes(model, data: Dict[str, Any]) -> Dict[str, Any]:
        allowed = set(model.model_fields) - {"id"}
        return {k: v for k, v in data.items() if k in allowed}
