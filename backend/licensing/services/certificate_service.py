"""
Certificate Service — Issues the licence certificate once an application is
finally approved, and registers generated documents for download.

The recommendation form is produced when the City Engineer signs off and the
fee challan when payment is recorded; both go through attach_document.
"""
import io
import logging
from datetime import datetime
from typing import Optional
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle, getSampleStyleSheet
from reportlab.lib.units import cm, inch
from reportlab.platypus import Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle
from sqlalchemy.orm import Session

from licensing.clock import Clock, system_clock
from licensing.models.application import Application
from licensing.models.download import GeneratedDocument
from licensing.models.enums import ApplicationStatus, ApprovalStatus, ArtifactKind
from licensing.services.document_store import DocumentStore, get_document_store
from licensing.services.stages import get_stage

logger = logging.getLogger(__name__)

POSITION_TITLES = {
    "ARCHITECT": "Architect",
    "LICENCE_ENGINEER": "Licence Engineer",
    "STRUCTURAL_ENGINEER": "Structural Engineer",
    "SUPERVISOR1": "Supervisor Grade I",
    "SUPERVISOR2": "Supervisor Grade II",
}

GRID_STYLE = TableStyle([
    ('BACKGROUND', (0, 0), (-1, 0), colors.HexColor('#e2e8f0')),
    ('FONTNAME', (0, 0), (-1, 0), 'Helvetica-Bold'),
    ('FONTNAME', (0, 1), (-1, -1), 'Helvetica'),
    ('FONTSIZE', (0, 0), (-1, -1), 10),
    ('ALIGN', (0, 0), (-1, -1), 'CENTER'),
    ('GRID', (0, 0), (-1, -1), 1, colors.HexColor('#cbd5e0')),
    ('TOPPADDING', (0, 0), (-1, -1), 6),
    ('BOTTOMPADDING', (0, 0), (-1, -1), 6),
])


def position_title(application: Application) -> str:
    return POSITION_TITLES.get(application.position_type.value, application.position_type.value)


def pdf_styles() -> dict[str, ParagraphStyle]:
    styles = getSampleStyleSheet()
    return {
        "title": ParagraphStyle(
            'CertTitle',
            parent=styles['Heading1'],
            fontSize=22,
            textColor=colors.HexColor('#1a365d'),
            alignment=TA_CENTER,
            spaceAfter=6,
        ),
        "subtitle": ParagraphStyle(
            'CertSubtitle',
            parent=styles['Heading2'],
            fontSize=14,
            textColor=colors.HexColor('#4a5568'),
            alignment=TA_CENTER,
            spaceAfter=18,
        ),
        "body": ParagraphStyle(
            'CertBody',
            parent=styles['Normal'],
            fontSize=12,
            alignment=TA_CENTER,
            spaceAfter=6,
        ),
        "small": ParagraphStyle(
            'CertSmall',
            parent=styles['Normal'],
            fontSize=9,
            textColor=colors.HexColor('#718096'),
            alignment=TA_CENTER,
        ),
    }


def approvals_table(application: Application) -> Table:
    """Approved stages so far, in review order."""
    rows = [["Review stage", "Decision", "Date"]]
    for review in sorted(application.reviews, key=lambda r: r.id):
        if review.approval_status != ApprovalStatus.APPROVED:
            continue
        rows.append([
            get_stage(review.stage).label,
            review.approval_status.value.title(),
            review.approval_date.strftime("%d %b %Y") if review.approval_date else "-",
        ])

    table = Table(rows, colWidths=[2.8*inch, 1.4*inch, 1.6*inch])
    table.setStyle(GRID_STYLE)
    return table


def build_pdf(title: str, content: list) -> bytes:
    buffer = io.BytesIO()
    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        rightMargin=2*cm,
        leftMargin=2*cm,
        topMargin=2*cm,
        bottomMargin=2*cm,
        title=title,
    )
    doc.build(content)
    pdf_bytes = buffer.getvalue()
    buffer.close()
    return pdf_bytes


class CertificateRenderer:
    """Renders the licence certificate PDF with reportlab."""

    def render(self, application: Application) -> bytes:
        styles = pdf_styles()
        issued = application.certificate_issued_at or application.approved_at

        content = [
            Paragraph("Pune Municipal Corporation", styles["title"]),
            Paragraph("Building Development Department", styles["subtitle"]),
            Paragraph("LICENCE CERTIFICATE", styles["title"]),
            Spacer(1, 16),
            Paragraph("This is to certify that", styles["body"]),
            Paragraph(f"<b>{escape(application.applicant_name)}</b>", styles["title"]),
            Paragraph(f"is licensed to practise as <b>{position_title(application)}</b>", styles["body"]),
            Paragraph(f"Application No. {escape(application.application_number)}", styles["body"]),
            Spacer(1, 16),
            approvals_table(application),
            Spacer(1, 24),
            Paragraph(f"Certificate No: <b>{escape(application.certificate_number or '')}</b>", styles["small"]),
        ]
        if issued:
            content.append(Paragraph(f"Issued On: {issued.strftime('%B %d, %Y')}", styles["small"]))
        content.append(Paragraph("Digitally approved through OTP-verified officer signatures.", styles["small"]))

        return build_pdf(f"Licence Certificate {application.certificate_number}", content)


class RecommendationFormRenderer:
    """Recommendation form carrying the first-round officer approvals."""

    def render(self, application: Application) -> bytes:
        styles = pdf_styles()
        content = [
            Paragraph("Pune Municipal Corporation", styles["title"]),
            Paragraph("Building Development Department", styles["subtitle"]),
            Paragraph("RECOMMENDATION FORM", styles["title"]),
            Spacer(1, 16),
            Paragraph(
                f"The application of <b>{escape(application.applicant_name)}</b> for a licence as "
                f"<b>{position_title(application)}</b> is recommended for approval.",
                styles["body"],
            ),
            Paragraph(f"Application No. {escape(application.application_number)}", styles["body"]),
            Spacer(1, 16),
            approvals_table(application),
            Spacer(1, 24),
            Paragraph("Signed through OTP-verified officer signatures.", styles["small"]),
        ]
        return build_pdf(f"Recommendation Form {application.application_number}", content)


class ChallanRenderer:
    """Licence fee challan (payment receipt)."""

    def __init__(self, amount: int, paid_on: datetime):
        self.amount = amount
        self.paid_on = paid_on

    def challan_number(self, application: Application) -> str:
        return f"CH{self.paid_on:%Y%m%d}{application.id:06d}"

    def render(self, application: Application) -> bytes:
        styles = pdf_styles()
        number = self.challan_number(application)

        rows = [
            ["Challan No.", number],
            ["Application No.", application.application_number],
            ["Applicant", application.applicant_name],
            ["Position", position_title(application)],
            ["Amount", f"Rs. {self.amount:,.2f}"],
            ["Paid On", self.paid_on.strftime("%d %b %Y")],
        ]
        table = Table(rows, colWidths=[2.2*inch, 3.6*inch])
        table.setStyle(GRID_STYLE)

        content = [
            Paragraph("Pune Municipal Corporation", styles["title"]),
            Paragraph("Licence Fee Challan", styles["subtitle"]),
            Spacer(1, 12),
            table,
            Spacer(1, 24),
            Paragraph("This is a computer generated receipt.", styles["small"]),
        ]
        return build_pdf(f"Challan {number}", content)


class CertificateService:
    """Fires on FINAL_APPROVED: numbers, renders and stores the certificate."""

    def __init__(
        self,
        db: Session,
        store: DocumentStore | None = None,
        renderer: CertificateRenderer | None = None,
        clock: Clock | None = None,
        recommendation_renderer: RecommendationFormRenderer | None = None,
    ):
        self.db = db
        self.store = store or get_document_store()
        self.renderer = renderer or CertificateRenderer()
        self.recommendation_renderer = recommendation_renderer or RecommendationFormRenderer()
        self.clock = clock or system_clock

    @staticmethod
    def certificate_number(application: Application) -> str:
        year = (application.approved_at or application.created_at).year
        return f"PMC/{application.position_type.value}/{year}/{application.id:05d}"

    def should_issue(self, application: Application) -> bool:
        return (
            application.status == ApplicationStatus.FINAL_APPROVED
            and not application.certificate_number
        )

    def issue(self, application: Application) -> Optional[GeneratedDocument]:
        """Number, render and store the certificate.

        A rendering or storage failure is logged and leaves the application
        approved without a certificate; downloads then fail closed.
        """
        if not self.should_issue(application):
            return None

        application.certificate_number = self.certificate_number(application)
        application.certificate_issued_at = self.clock.now()

        document = self._render_and_attach(
            application, ArtifactKind.CERTIFICATE, self.renderer,
            f"licence-certificate-{application.application_number}.pdf",
        )
        if document is None:
            application.certificate_number = None
            application.certificate_issued_at = None
            return None

        logger.info(
            "Certificate %s issued for %s (%d bytes)",
            application.certificate_number, application.application_number, document.size_bytes,
        )
        return document

    def issue_recommendation_form(self, application: Application) -> Optional[GeneratedDocument]:
        if application.status != ApplicationStatus.PAYMENT_PENDING:
            return None
        return self._render_and_attach(
            application, ArtifactKind.RECOMMENDATION_FORM, self.recommendation_renderer,
            f"recommendation-form-{application.application_number}.pdf",
        )

    def issue_challan(self, application: Application, amount: int) -> Optional[GeneratedDocument]:
        if application.status != ApplicationStatus.PAYMENT_COMPLETED:
            return None
        return self._render_and_attach(
            application, ArtifactKind.CHALLAN, ChallanRenderer(amount, self.clock.now()),
            f"challan-{application.application_number}.pdf",
        )

    def _render_and_attach(self, application, kind, renderer, file_name) -> Optional[GeneratedDocument]:
        try:
            content = renderer.render(application)
            return self.attach_document(application, kind, content, file_name)
        except Exception:
            logger.exception("%s generation failed for %s", kind.value, application.application_number)
            return None

    def attach_document(
        self,
        application: Application,
        kind: ArtifactKind,
        content: bytes,
        file_name: str,
        content_type: str = "application/pdf",
    ) -> GeneratedDocument:
        """Store an artifact and make it downloadable; replaces any earlier one of the same kind."""
        key = f"{application.application_number}/{kind.value.lower()}.pdf"
        self.store.put(key, content)

        document = (
            self.db.query(GeneratedDocument)
            .filter(GeneratedDocument.application_id == application.id, GeneratedDocument.kind == kind)
            .first()
        )
        if document is None:
            document = GeneratedDocument(application_id=application.id, kind=kind)
            self.db.add(document)

        document.storage_key = key
        document.file_name = file_name
        document.content_type = content_type
        document.size_bytes = len(content)
        document.created_at = self.clock.now()
        self.db.flush()
        return document
