from __future__ import annotations

from pathlib import Path

import pytest

from relohire.core.errors import NotFoundError, ValidationFailedError
from relohire.models.generated_document import GeneratedDocument
from relohire.services import documents as documents_service
from relohire.services.documents import DocumentService, PDFGenerationError
from relohire.tasks import documents as document_tasks


@pytest.fixture()
def task_sessions(monkeypatch, session_factory):
    monkeypatch.setattr(document_tasks, "_with_db_session", lambda: session_factory())


def test_generate_certificate_writes_pdf(db_session, tmp_path, company_user, application):
    application.assessment_score = 88
    db_session.commit()

    row = DocumentService(db_session, output_dir=tmp_path).generate(application.id, "assessment_certificate")

    assert row.status == "ready"
    assert row.attempts == 1
    path = Path(row.file_path)
    assert path == tmp_path / "assessment_certificate" / f"assessment_certificate_{application.id}.pdf"
    assert path.read_bytes().startswith(b"%PDF")

    db_session.refresh(application)
    assert application.generated_documents == {"assessment_certificate": str(path)}


def test_generate_is_a_noop_when_ready(db_session, tmp_path, company_user, application):
    service = DocumentService(db_session, output_dir=tmp_path)
    first = service.generate(application.id, "employment_contract")
    second = service.generate(application.id, "employment_contract")

    assert second.id == first.id
    assert second.attempts == 1
    assert db_session.query(GeneratedDocument).count() == 1


@pytest.mark.parametrize("kind", ["visa_invitation", "work_permit_letter", "accommodation_letter"])
def test_relocation_documents_render(db_session, tmp_path, company_user, application, kind):
    row = DocumentService(db_session, output_dir=tmp_path).generate(application.id, kind)
    assert Path(row.file_path).exists()


def test_generate_rejects_unknown_kind_and_application(db_session, tmp_path, application):
    service = DocumentService(db_session, output_dir=tmp_path)

    with pytest.raises(ValidationFailedError):
        service.generate(application.id, "birth_certificate")
    with pytest.raises(NotFoundError):
        service.generate(999999, "employment_contract")


def test_render_failure_marks_row_failed(monkeypatch, db_session, tmp_path, application):
    def broken(kind, ctx, path):
        raise PDFGenerationError("disk full")

    monkeypatch.setattr(documents_service, "render_pdf", broken)

    with pytest.raises(PDFGenerationError):
        DocumentService(db_session, output_dir=tmp_path).generate(application.id, "employment_contract")

    row = db_session.query(GeneratedDocument).one()
    assert row.status == "failed"
    assert row.error_message == "disk full"
    assert row.attempts == 1


def test_task_generates_into_configured_directory(task_sessions, db_session, tmp_path, company_user, application):
    result = document_tasks.generate_application_document.apply(args=(application.id, "visa_invitation")).get()

    assert result is not None
    assert Path(result).exists()
    assert Path(result).is_relative_to(tmp_path / "generated")
    row = db_session.query(GeneratedDocument).one()
    assert row.status == "ready"


def test_task_skips_permanent_failures(task_sessions, db_session, application):
    unknown_kind = document_tasks.generate_application_document.apply(args=(application.id, "selfie")).get()
    missing_app = document_tasks.generate_application_document.apply(args=(999999, "visa_invitation")).get()

    assert unknown_kind is None
    assert missing_app is None
    assert db_session.query(GeneratedDocument).count() == 0


def test_schedule_document_runs_inline_without_broker(task_sessions, db_session, company_user, application):
    result = document_tasks.schedule_document(application.id, "employment_contract")

    assert Path(result.get()).exists()
