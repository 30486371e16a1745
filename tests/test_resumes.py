# tests/test_resumes.py
import pytest

from lifemate.core.errors import NotFoundError, UpstreamDeliveryError, ValidationFailedError
from lifemate.repositories import jobseekers as jobseeker_repo
from lifemate.services.resumes import ResumeService, pdf_file_name

CONTENT = {
    "title": "ICU Nurse",
    "personal_info": {"full_name": "Ravi Kumar", "email": "ravi@example.com"},
    "summary": "Critical-care nurse.",
    "skills": [{"name": "Triage"}],
}


@pytest.fixture
def resumes(settings, storage, clock, db):
    return ResumeService(settings, storage, clock=clock)


@pytest.fixture
async def user(auth_service):
    session = await auth_service.register("ravi@example.com", "Secret123", "Ravi", "Kumar", "jobseeker")
    return session.user


def test_pdf_file_name_is_safe_and_timestamped(clock):
    name = pdf_file_name("My CV / 2026", "r1", clock())
    assert name.startswith("My_CV___2026_r1_")
    assert name.endswith(".pdf")
    assert pdf_file_name(None, "r1", clock()).startswith("resume_r1_")


@pytest.mark.asyncio
async def test_same_title_same_instant_gets_distinct_files(resumes, user, auth_service, storage):
    other = (await auth_service.register("mira@example.com", "Secret123", "Mira", "Das", "jobseeker")).user
    mine = await resumes.build(user, {**CONTENT, "title": "My Resume"})
    theirs = await resumes.build(
        other, {**CONTENT, "title": "My Resume", "personal_info": {"full_name": "Mira Das"}}
    )

    mine = await resumes.generate_pdf(mine.id, user.id)
    theirs = await resumes.generate_pdf(theirs.id, other.id)

    assert mine.pdf_file_id != theirs.pdf_file_id
    assert mine.pdf_file_id in storage.objects
    assert theirs.pdf_file_id in storage.objects


@pytest.mark.asyncio
async def test_build_and_list(resumes, user):
    created = await resumes.build(user, dict(CONTENT))
    assert created.user_id == user.id
    assert created.stats.views == created.stats.downloads == 0
    assert created.pdf_url is None

    listed = await resumes.list(user.id)
    assert [r.id for r in listed] == [created.id]
    assert listed[0].title == "ICU Nurse"


@pytest.mark.asyncio
async def test_build_ignores_protected_fields(resumes, user):
    created = await resumes.build(
        user, {**CONTENT, "user_id": "someone-else", "is_default": True, "stats": {"views": 50}}
    )
    assert created.user_id == user.id
    assert not created.is_default
    assert created.stats.views == 0


@pytest.mark.asyncio
async def test_build_rejects_malformed_content(resumes, user):
    with pytest.raises(ValidationFailedError) as exc_info:
        await resumes.build(user, {"skills": [{"level": "expert"}]})
    assert exc_info.value.errors[0]["field"].startswith("skills")


@pytest.mark.asyncio
async def test_auto_populate_from_profile(resumes, user, clock):
    await jobseeker_repo.set_fields(
        user.id,
        {
            "bio": "Seven years in ICUs.",
            "work_experience": [{"position": "Staff Nurse", "company": "City Hospital"}],
            "skills": [{"name": "Ventilator care"}],
            "languages": [{"id": "l1", "name": "Hindi", "proficiency": "Native"}],
        },
        clock(),
    )
    created = await resumes.build(user, {"title": "Auto"}, auto_populate=True)
    assert created.personal_info.full_name == "Ravi Kumar"
    assert created.personal_info.email == "ravi@example.com"
    assert created.summary == "Seven years in ICUs."
    assert created.work_experience[0].company == "City Hospital"
    assert [s.name for s in created.skills] == ["Ventilator care"]
    assert created.languages[0].name == "Hindi"


@pytest.mark.asyncio
async def test_update_never_touches_protected_fields(resumes, user):
    created = await resumes.build(user, dict(CONTENT))
    updated = await resumes.update(
        created.id,
        user.id,
        {"title": "Renamed", "stats": {"views": 99}, "pdf_url": "https://evil.test/x.pdf", "is_default": True},
    )
    assert updated.title == "Renamed"
    assert updated.stats.views == 0
    assert updated.pdf_url is None
    assert not updated.is_default
    assert updated.skills[0].name == "Triage"


@pytest.mark.asyncio
async def test_resumes_are_private_to_their_owner(resumes, user, auth_service):
    created = await resumes.build(user, dict(CONTENT))
    other = (await auth_service.register("other@example.com", "Secret123", "Oli", "Ver", "jobseeker")).user

    with pytest.raises(NotFoundError):
        await resumes.get(created.id, other.id)
    with pytest.raises(NotFoundError):
        await resumes.update(created.id, other.id, {"title": "x"})
    with pytest.raises(NotFoundError):
        await resumes.delete(created.id, other.id)
    with pytest.raises(NotFoundError):
        await resumes.get("not-an-object-id", user.id)


@pytest.mark.asyncio
async def test_generate_pdf_stores_file_and_replaces_previous(resumes, user, storage, clock):
    created = await resumes.build(user, dict(CONTENT))

    first = await resumes.generate_pdf(created.id, user.id)
    assert first.pdf_file_id in storage.objects
    assert storage.objects[first.pdf_file_id]["data"].startswith(b"%PDF")
    assert storage.objects[first.pdf_file_id]["mime_type"] == "application/pdf"
    assert first.pdf_file_id.startswith("resumes/ICU_Nurse_")
    assert first.pdf_url == f"https://files.test/{first.pdf_file_id}"

    clock.advance(seconds=1)
    second = await resumes.generate_pdf(created.id, user.id)
    assert second.pdf_file_id != first.pdf_file_id
    assert storage.deleted == [first.pdf_file_id]


@pytest.mark.asyncio
async def test_generate_pdf_requires_full_name(resumes, user, storage):
    created = await resumes.build(user, {"title": "Nameless"})
    with pytest.raises(ValidationFailedError):
        await resumes.generate_pdf(created.id, user.id)
    assert storage.objects == {}


@pytest.mark.asyncio
async def test_upload_failure_keeps_old_pdf(resumes, user, storage, clock):
    created = await resumes.build(user, dict(CONTENT))
    first = await resumes.generate_pdf(created.id, user.id)

    storage.fail_uploads = True
    clock.advance(seconds=1)
    with pytest.raises(UpstreamDeliveryError):
        await resumes.generate_pdf(created.id, user.id)
    assert (await resumes.get(created.id, user.id)).pdf_file_id == first.pdf_file_id
    assert storage.deleted == []


@pytest.mark.asyncio
async def test_regenerate_failure_does_not_fail_update(resumes, user):
    created = await resumes.build(user, {"title": "Draft"})
    updated = await resumes.update(created.id, user.id, {"summary": "Now with summary"}, regenerate_pdf=True)
    assert updated.summary == "Now with summary"
    assert updated.pdf_url is None


@pytest.mark.asyncio
async def test_preview_and_download_count(resumes, user):
    created = await resumes.build(user, dict(CONTENT))
    await resumes.preview(created.id, user.id)
    viewed = await resumes.preview(created.id, user.id)
    assert viewed.stats.views == 2

    url = await resumes.download(created.id, user.id)
    assert url.startswith("https://files.test/resumes/")
    again = await resumes.download(created.id, user.id)
    assert again == url
    assert (await resumes.get(created.id, user.id)).stats.downloads == 2


@pytest.mark.asyncio
async def test_single_default(resumes, user):
    a = await resumes.build(user, dict(CONTENT))
    b = await resumes.build(user, {**CONTENT, "title": "Second"})

    await resumes.set_default(a.id, user.id)
    await resumes.set_default(b.id, user.id)
    assert not (await resumes.get(a.id, user.id)).is_default
    assert (await resumes.get(b.id, user.id)).is_default

    with pytest.raises(NotFoundError):
        await resumes.set_default("0" * 24, user.id)
    # a failed call leaves the current default alone
    assert (await resumes.get(b.id, user.id)).is_default


@pytest.mark.asyncio
async def test_delete_discards_pdf(resumes, user, storage):
    created = await resumes.build(user, dict(CONTENT))
    generated = await resumes.generate_pdf(created.id, user.id)
    await resumes.delete(created.id, user.id)
    assert storage.deleted == [generated.pdf_file_id]
    assert await resumes.list(user.id) == []


# --- routes -----------------------------------------------------------------------

async def _bearer(client, email="api.resume@example.com"):
    r = await client.post(
        "/api/auth/register",
        json={"email": email, "password": "Secret123", "first_name": "Api", "last_name": "User", "role": "jobseeker"},
    )
    return {"Authorization": f"Bearer {r.json()['data']['access_token']}"}


@pytest.mark.asyncio
async def test_resume_routes(client, storage):
    headers = await _bearer(client)

    r = await client.post("/api/resumes", json={**CONTENT, "auto_populate": False}, headers=headers)
    assert r.status_code == 201, r.text
    resume_id = r.json()["data"]["resume"]["id"]

    r = await client.get("/api/resumes", headers=headers)
    assert [x["id"] for x in r.json()["data"]["resumes"]] == [resume_id]

    r = await client.put(f"/api/resumes/{resume_id}", json={"title": "Updated"}, headers=headers)
    assert r.json()["data"]["resume"]["title"] == "Updated"

    r = await client.post(f"/api/resumes/{resume_id}/generate-pdf", headers=headers)
    assert r.status_code == 200
    assert r.json()["data"]["pdf_url"].startswith("https://files.test/")

    r = await client.get(f"/api/resumes/{resume_id}/download", headers=headers)
    assert r.json()["data"]["pdf_url"].startswith("https://files.test/")

    r = await client.patch(f"/api/resumes/{resume_id}/default", headers=headers)
    assert r.status_code == 200

    r = await client.delete(f"/api/resumes/{resume_id}", headers=headers)
    assert r.status_code == 200
    r = await client.get(f"/api/resumes/{resume_id}", headers=headers)
    assert r.status_code == 404
    assert r.json()["message"] == "Resume not found"


@pytest.mark.asyncio
async def test_resume_routes_require_auth(client):
    r = await client.get("/api/resumes")
    assert r.status_code == 401
    assert r.json()["message"] == "Access denied. No token provided."
