# vtl-backend/credentials/document.py

from io import BytesIO

from django.conf import settings
from django.urls import reverse

import qrcode
from reportlab.pdfgen import canvas
from reportlab.lib.pagesizes import A4, landscape
from reportlab.lib.utils import ImageReader
from reportlab.lib import colors


ACCENT = colors.HexColor("#2c3e50")
REVOKED = colors.HexColor("#c0392b")


def build_verify_url(credential, request=None):
    """
    Absolute URL of the public verification endpoint for a credential.
    Uses the request host when available, VTL_PUBLIC_BASE_URL otherwise.
    """
    path = reverse("credential-verify", args=[credential.pk])
    if request is not None:
        return request.build_absolute_uri(path)
    return settings.VTL_PUBLIC_BASE_URL.rstrip("/") + path


def _qr_reader(data):
    img = qrcode.make(data)
    buffer = BytesIO()
    img.save(buffer, format="PNG")
    buffer.seek(0)
    return ImageReader(buffer)


def render_credential_pdf(credential, request=None) -> bytes:
    """
    Printable copy of a credential. The QR code links to the verification
    endpoint; the PDF itself carries no authority, the signed payload does.
    """
    payload = credential.payload
    buffer = BytesIO()

    page_size = landscape(A4)
    p = canvas.Canvas(buffer, pagesize=page_size)
    width, height = page_size

    # ---------- Border ----------
    p.setStrokeColor(ACCENT)
    p.setLineWidth(4)
    margin = 30
    p.rect(margin, margin, width - 2 * margin, height - 2 * margin, stroke=1, fill=0)

    # ---------- Title ----------
    p.setFillColor(ACCENT)
    p.setFont("Helvetica-Bold", 32)
    p.drawCentredString(width / 2.0, height - 120, "Verified Activity Credential")

    # ---------- Body ----------
    p.setFillColor(colors.black)
    p.setFont("Helvetica", 18)
    p.drawCentredString(width / 2.0, height - 190, f"This certifies that {payload.get('student_name', '')}")
    p.drawCentredString(width / 2.0, height - 220, f"completed \"{payload.get('title', '')}\"")

    p.setFont("Helvetica", 12)
    details = [
        f"Type: {payload.get('activity_type', '')}",
        f"Department: {payload.get('department') or '-'}",
        f"Verified at: {payload.get('verified_at') or '-'}",
        f"Issued at: {payload.get('issued_at', '')}",
    ]
    y = height - 270
    for line in details:
        p.drawCentredString(width / 2.0, y, line)
        y -= 18

    # ---------- Revocation banner ----------
    if credential.revoked_at:
        p.setFillColor(REVOKED)
        p.setFont("Helvetica-Bold", 28)
        p.drawCentredString(width / 2.0, y - 30, "REVOKED")
        p.setFont("Helvetica", 11)
        p.drawCentredString(width / 2.0, y - 48, credential.revocation_reason or "")
        p.setFillColor(colors.black)

    # ---------- Footer ----------
    p.setFont("Helvetica-Oblique", 9)
    p.drawString(margin + 10, 80, f"Issued by {payload.get('tenant', '')}")
    p.drawString(margin + 10, 66, f"Credential ID: {credential.pk}")
    p.drawString(margin + 10, 52, f"Payload SHA-256: {credential.payload_hash}")
    p.drawString(margin + 10, 40, f"Key: {credential.key_id}")

    # ---------- QR ----------
    qr_size = 110
    p.drawImage(
        _qr_reader(build_verify_url(credential, request)),
        width - qr_size - margin - 20,
        margin + 20,
        width=qr_size,
        height=qr_size,
    )

    p.showPage()
    p.save()

    buffer.seek(0)
    return buffer.getvalue()
