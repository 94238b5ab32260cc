from __future__ import annotations

from relohire.core.security import hash_password
from relohire.models.job import Job
from relohire.models.user import User


def _other_company(db_session) -> User:
    user = User(
        email="hr@rival.com",
        name="Rival HR",
        password_hash=hash_password("test_password_123"),
        role="company",
        is_active=True,
    )
    db_session.add(user)
    db_session.commit()
    db_session.refresh(user)
    return user


def test_candidate_applies_to_job(client_for, db_session, candidate, job):
    with client_for(candidate) as c:
        res = c.post("/api/v1/applications", json={"job_id": job.id, "cover_letter": "  Keen to relocate.  "})

    assert res.status_code == 201
    data = res.json()["data"]
    assert data["status"] == "pending"
    assert data["current_step"] == "application"
    assert data["cover_letter"] == "Keen to relocate."
    assert data["match_score"] == 80
    assert data["assessment_cutoff_score"] == 70
    assert data["payment_status"] == {
        "assessment": "not_required",
        "document_processing": "not_required",
        "visa_processing": "not_required",
    }
    assert data["payment_gates"] == {
        "assessment_blocked": True,
        "document_submission_blocked": True,
        "visa_processing_blocked": True,
    }
    assert data["job"]["title"] == "Backend Engineer"
    assert data["version"] == 1

    db_session.refresh(job)
    assert job.application_count == 1


def test_duplicate_application_conflicts(client_for, candidate, job):
    with client_for(candidate) as c:
        assert c.post("/api/v1/applications", json={"job_id": job.id}).status_code == 201
        res = c.post("/api/v1/applications", json={"job_id": job.id})

    assert res.status_code == 409
    assert res.json()["error"] == "CONFLICT"


def test_cannot_apply_to_closed_or_missing_job(client_for, db_session, candidate, job):
    job.is_active = False
    db_session.commit()

    with client_for(candidate) as c:
        closed = c.post("/api/v1/applications", json={"job_id": job.id})
        missing = c.post("/api/v1/applications", json={"job_id": 424242})

    assert closed.status_code == 400
    assert closed.json()["error"] == "VALIDATION_ERROR"
    assert missing.status_code == 404


def test_companies_cannot_apply(client_for, company_user, job):
    with client_for(company_user) as c:
        res = c.post("/api/v1/applications", json={"job_id": job.id})

    assert res.status_code == 403


def test_list_my_applications_only_returns_mine(client_for, db_session, candidate, other_candidate, job, application):
    second = Job(
        title="SRE",
        company="Acme GmbH",
        location="Munich",
        country="Germany",
        salary="EUR 70,000",
        category="engineering",
        description="Keep it running.",
        experience_level="Mid",
        posted_by=job.posted_by,
    )
    db_session.add(second)
    db_session.commit()

    with client_for(other_candidate) as c:
        assert c.post("/api/v1/applications", json={"job_id": second.id}).status_code == 201
        theirs = c.get("/api/v1/applications").json()["data"]

    with client_for(candidate) as c:
        mine = c.get("/api/v1/applications").json()["data"]

    assert [a["id"] for a in mine] == [application.id]
    assert len(theirs) == 1
    assert theirs[0]["job_id"] == second.id


def test_application_visibility(client_for, candidate, other_candidate, company_user, admin, application):
    for user, expected in ((candidate, 200), (company_user, 200), (admin, 200), (other_candidate, 404)):
        with client_for(user) as c:
            res = c.get(f"/api/v1/applications/{application.id}")
        assert res.status_code == expected, user.email


def test_employer_lists_job_applications(client_for, db_session, company_user, job, application):
    with client_for(company_user) as c:
        res = c.get(f"/api/v1/applications/job/{job.id}")
    assert res.status_code == 200
    assert [a["id"] for a in res.json()["data"]] == [application.id]

    rival = _other_company(db_session)
    with client_for(rival) as c:
        res = c.get(f"/api/v1/applications/job/{job.id}")
    assert res.status_code == 403


def test_employer_accepts_application(client_for, company_user, application):
    with client_for(company_user) as c:
        res = c.patch(f"/api/v1/applications/{application.id}/status", json={"status": "accepted"})

    assert res.status_code == 200
    body = res.json()
    assert body["message"] == "Application accepted successfully"
    assert body["data"]["status"] == "accepted"
    assert body["data"]["current_step"] == "assessment"
    assert body["data"]["payment_status"]["assessment"] == "required"
    assert body["data"]["version"] == 2


def test_employer_rejects_with_reason(client_for, company_user, application):
    with client_for(company_user) as c:
        res = c.patch(
            f"/api/v1/applications/{application.id}/status",
            json={"status": "rejected", "reason": "Role filled internally"},
        )

    assert res.status_code == 200
    assert res.json()["data"]["status"] == "rejected"
    assert res.json()["data"]["rejection_reason"] == "Role filled internally"


def test_unrelated_company_cannot_change_status(client_for, db_session, application):
    rival = _other_company(db_session)

    with client_for(rival) as c:
        res = c.patch(f"/api/v1/applications/{application.id}/status", json={"status": "accepted"})

    assert res.status_code == 403
    assert res.json()["error"] == "FORBIDDEN"


def test_status_update_rejects_unknown_status(client_for, company_user, application):
    with client_for(company_user) as c:
        res = c.patch(f"/api/v1/applications/{application.id}/status", json={"status": "completed"})

    assert res.status_code == 422


def test_candidate_withdraws(client_for, candidate, application):
    with client_for(candidate) as c:
        res = c.patch(f"/api/v1/applications/{application.id}/withdraw")
        again = c.patch(f"/api/v1/applications/{application.id}/withdraw")

    assert res.status_code == 200
    assert res.json()["data"]["status"] == "rejected"
    assert res.json()["data"]["rejection_reason"] == "Withdrawn by applicant"
    assert again.status_code == 409
