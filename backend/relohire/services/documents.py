from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from relohire.core.config import settings
from relohire.core.errors import NotFoundError, ValidationFailedError
from relohire.models.application import Application
from relohire.models.company import Company
from relohire.models.generated_document import DocumentKind, DocumentStatus, GeneratedDocument

logger = logging.getLogger(__name__)

DOCUMENT_TITLES = {
    DocumentKind.assessment_certificate.value: "Assessment Certificate",
    DocumentKind.employment_contract.value: "Employment Contract",
    DocumentKind.visa_invitation.value: "Visa Invitation Letter",
    DocumentKind.work_permit_letter.value: "Work Permit Support Letter",
    DocumentKind.accommodation_letter.value: "Accommodation Confirmation Letter",
}

RELOCATION_DOCUMENTS = (
    DocumentKind.visa_invitation.value,
    DocumentKind.work_permit_letter.value,
    DocumentKind.accommodation_letter.value,
)


class PDFGenerationError(Exception):
    pass


@dataclass
class DocumentContext:
    application_id: int
    candidate_name: str
    candidate_email: str
    nationality: str | None
    job_title: str
    company_name: str
    company_address: str | None
    country: str
    location: str
    salary: str
    contract_duration: str | None
    start_date: str | None
    accommodation_provided: bool
    assessment_score: int | None = None
    assessment_cutoff_score: int | None = None
    offer_details: dict = field(default_factory=dict)
    issued_on: str = field(default_factory=lambda: datetime.now(timezone.utc).strftime("%d %B %Y"))

    @property
    def reference(self) -> str:
        return f"RH-{self.application_id:06d}"


def build_context(application: Application, company: Company | None = None) -> DocumentContext:
    user, job = application.user, application.job
    offer = dict(application.offer_details or {})
    address = None
    if company is not None:
        address = ", ".join(p for p in (company.address, company.city, company.country) if p) or None
    start = offer.get("start_date") or (job.start_date.date().isoformat() if job.start_date else None)
    return DocumentContext(
        application_id=application.id,
        candidate_name=user.name,
        candidate_email=user.email,
        nationality=user.nationality,
        job_title=job.title,
        company_name=company.company_name if company is not None else job.company,
        company_address=address,
        country=job.country,
        location=job.location,
        salary=str(offer.get("salary") or job.salary),
        contract_duration=job.contract_duration,
        start_date=str(start) if start else None,
        accommodation_provided=bool(job.accommodation_provided),
        assessment_score=application.assessment_score,
        assessment_cutoff_score=application.assessment_cutoff_score,
        offer_details=offer,
    )


def _styles() -> dict[str, ParagraphStyle]:
    base = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            "DocTitle",
            parent=base["Title"],
            fontSize=18,
            textColor=colors.HexColor("#0f3d5e"),
            alignment=TA_CENTER,
            spaceAfter=18,
            fontName="Helvetica-Bold",
        ),
        "heading": ParagraphStyle(
            "DocHeading",
            parent=base["Heading2"],
            fontSize=12,
            textColor=colors.HexColor("#1b5e87"),
            spaceBefore=10,
            spaceAfter=6,
        ),
        "body": ParagraphStyle("DocBody", parent=base["BodyText"], fontSize=10, leading=14, spaceAfter=6),
        "small": ParagraphStyle("DocSmall", parent=base["BodyText"], fontSize=8, textColor=colors.grey),
    }


def _p(text: str, style: ParagraphStyle) -> Paragraph:
    return Paragraph(escape(text), style)


def _details_table(rows: list[tuple[str, str]]) -> Table:
    table = Table([[k, v] for k, v in rows], colWidths=[150, 300])
    table.setStyle(
        TableStyle(
            [
                ("FONTNAME", (0, 0), (0, -1), "Helvetica-Bold"),
                ("FONTSIZE", (0, 0), (-1, -1), 10),
                ("GRID", (0, 0), (-1, -1), 0.25, colors.HexColor("#b0bec5")),
                ("BACKGROUND", (0, 0), (0, -1), colors.HexColor("#eceff1")),
                ("VALIGN", (0, 0), (-1, -1), "TOP"),
            ]
        )
    )
    return table


def _body_for(kind: str, ctx: DocumentContext, s: dict[str, ParagraphStyle]) -> list:
    if kind == DocumentKind.assessment_certificate.value:
        return [
            _p(f"This certifies that {ctx.candidate_name} completed the pre-employment assessment "
               f"for the position of {ctx.job_title} at {ctx.company_name}.", s["body"]),
            _details_table([
                ("Score", f"{ctx.assessment_score}%"),
                ("Pass mark", f"{ctx.assessment_cutoff_score}%"),
                ("Result", "PASSED"),
            ]),
        ]
    if kind == DocumentKind.employment_contract.value:
        benefits = ctx.offer_details.get("benefits") or []
        conditions = ctx.offer_details.get("conditions") or []
        out = [
            _p(f"This contract is made between {ctx.company_name} (the Employer) and "
               f"{ctx.candidate_name} (the Employee).", s["body"]),
            _details_table([
                ("Position", ctx.job_title),
                ("Work location", f"{ctx.location}, {ctx.country}"),
                ("Salary", ctx.salary),
                ("Start date", ctx.start_date or "To be confirmed"),
                ("Contract duration", ctx.contract_duration or "Permanent"),
                ("Accommodation", "Provided" if ctx.accommodation_provided else "Not provided"),
            ]),
        ]
        if benefits:
            out.append(_p("Benefits", s["heading"]))
            out.extend(_p(f"- {b}", s["body"]) for b in benefits)
        if conditions:
            out.append(_p("Conditions", s["heading"]))
            out.extend(_p(f"- {c}", s["body"]) for c in conditions)
        return out
    if kind == DocumentKind.visa_invitation.value:
        return [
            _p("To the Consular Officer,", s["body"]),
            _p(f"{ctx.company_name} invites {ctx.candidate_name}"
               f"{', a national of ' + ctx.nationality if ctx.nationality else ''}, "
               f"to enter {ctx.country} to take up employment as {ctx.job_title}.", s["body"]),
            _p("The company sponsors the visa application and confirms the employment offer "
               "described in the attached contract.", s["body"]),
        ]
    if kind == DocumentKind.work_permit_letter.value:
        return [
            _p(f"{ctx.company_name} requests a work permit for {ctx.candidate_name} "
               f"to work as {ctx.job_title} in {ctx.location}, {ctx.country}.", s["body"]),
            _details_table([
                ("Employer", ctx.company_name),
                ("Employer address", ctx.company_address or "-"),
                ("Salary", ctx.salary),
                ("Contract duration", ctx.contract_duration or "Permanent"),
            ]),
        ]
    if kind == DocumentKind.accommodation_letter.value:
        arrangement = (
            "will be provided by the employer for the duration of the contract"
            if ctx.accommodation_provided
            else "will be arranged by the employee; the employer will assist with temporary housing on arrival"
        )
        return [
            _p(f"This letter confirms that accommodation for {ctx.candidate_name} in "
               f"{ctx.location}, {ctx.country} {arrangement}.", s["body"]),
        ]
    raise ValidationFailedError(f"Unknown document kind {kind!r}")


def render_pdf(kind: str, ctx: DocumentContext, path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    s = _styles()
    story = [
        _p(ctx.company_name, s["small"]),
        _p(DOCUMENT_TITLES.get(kind, kind), s["title"]),
        _p(f"Reference: {ctx.reference}    Date: {ctx.issued_on}", s["small"]),
        Spacer(1, 12),
    ]
    story.extend(_body_for(kind, ctx, s))
    story.extend([Spacer(1, 24), _p(f"Issued on behalf of {ctx.company_name}", s["body"])])

    try:
        doc = SimpleDocTemplate(
            str(path),
            pagesize=A4,
            rightMargin=60,
            leftMargin=60,
            topMargin=60,
            bottomMargin=60,
            title=DOCUMENT_TITLES.get(kind, kind),
        )
        doc.build(story)
    except Exception as exc:  # noqa: BLE001
        raise PDFGenerationError(f"Failed to render {kind}: {exc}") from exc
    return path


class DocumentService:
    """
    Generates one PDF per (application, kind). Re-running for a kind that is
    already ready is a no-op, so callers can retry freely.
    """

    def __init__(self, db: Session, *, output_dir: str | Path | None = None):
        self.db = db
        self.output_dir = Path(output_dir or settings.GENERATED_DOCS_DIR)

    def _row(self, application_id: int, kind: str) -> GeneratedDocument:
        row = (
            self.db.query(GeneratedDocument)
            .filter(GeneratedDocument.application_id == application_id, GeneratedDocument.kind == kind)
            .first()
        )
        if row:
            return row
        row = GeneratedDocument(application_id=application_id, kind=kind, status=DocumentStatus.pending.value)
        self.db.add(row)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            row = (
                self.db.query(GeneratedDocument)
                .filter(GeneratedDocument.application_id == application_id, GeneratedDocument.kind == kind)
                .one()
            )
        return row

    def generate(self, application_id: int, kind: str) -> GeneratedDocument:
        if kind not in DOCUMENT_TITLES:
            raise ValidationFailedError(f"Unknown document kind {kind!r}")
        application = self.db.get(Application, application_id)
        if not application:
            raise NotFoundError("Application not found")

        row = self._row(application_id, kind)
        if row.status == DocumentStatus.ready.value and row.file_path and Path(row.file_path).exists():
            logger.info("Document %s for application %s already generated", kind, application_id)
            return row

        company = None
        if application.job.posted_by:
            company = self.db.query(Company).filter(Company.user_id == application.job.posted_by).first()

        path = self.output_dir / kind / f"{kind}_{application_id}.pdf"
        row.attempts = int(row.attempts or 0) + 1
        try:
            render_pdf(kind, build_context(application, company), path)
        except Exception as exc:
            row.status = DocumentStatus.failed.value
            row.error_message = str(exc)[:1000]
            self.db.commit()
            raise

        row.status = DocumentStatus.ready.value
        row.file_path = str(path)
        row.error_message = None
        self.db.commit()
        self.db.refresh(row)
        logger.info("Generated %s for application %s at %s", kind, application_id, path)
        return row
