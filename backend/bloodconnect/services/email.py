"""Email delivery for workflow events using SMTP."""
import html
import logging
import re
import smtplib
from collections.abc import Callable
from datetime import datetime
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText

from bloodconnect.config import Settings

logger = logging.getLogger(__name__)


def _e(value: object) -> str:
    """HTML-escape a template value; request and donor fields are user supplied."""
    return "" if value is None else html.escape(str(value))


def _format_datetime(value: str | None) -> str:
    if not value:
        return ""
    try:
        return datetime.fromisoformat(value).strftime("%d %b %Y, %H:%M UTC")
    except ValueError:
        return value


def _details(items: list[tuple[str, object]]) -> str:
    rows = "".join(f"<li><strong>{label}:</strong> {_e(value)}</li>" for label, value in items)
    return f"<ul>{rows}</ul>"


def _request_details(data: dict) -> str:
    return _details([
        ("Requestor", data.get("requestorName")),
        ("Blood Group", data.get("bloodGroup")),
        ("Units", data.get("units")),
        ("Urgency", data.get("urgency")),
        ("Hospital", data.get("hospitalName")),
        ("Location", data.get("location")),
        ("Required Date", _format_datetime(data.get("dateTime"))),
    ])


# template key -> (subject builder, html builder)
TEMPLATES: dict[str, tuple[Callable[[dict], str], Callable[[dict], str]]] = {
    "new_blood_request": (
        lambda d: f"New Blood Request - {d.get('bloodGroup')} Needed",
        lambda d: (
            "<h2>New Blood Request Submitted</h2>"
            "<p>A new blood request has been submitted and requires your review:</p>"
            f"{_request_details(d)}"
            "<p>Please log in to the admin panel to review and approve this request.</p>"
        ),
    ),
    "request_approved": (
        lambda d: f"Blood Request Available - {d.get('bloodGroup')}",
        lambda d: (
            "<h2>Blood Request Available</h2>"
            "<p>A blood request matching your blood type has been approved:</p>"
            f"{_request_details(d)}"
            "<p>If you're available to help, please log in to opt in for this request.</p>"
        ),
    ),
    "request_rejected": (
        lambda d: "Blood Request Update",
        lambda d: (
            "<h2>Blood Request Update</h2>"
            f"<p>Dear {_e(d.get('requestorName'))},</p>"
            "<p>We regret to inform you that your blood request could not be approved at this time.</p>"
            f"<p><strong>Reason:</strong> {_e(d.get('reason'))}</p>"
            "<p>Please feel free to submit a new request or contact us for assistance.</p>"
        ),
    ),
    "donor_assigned": (
        lambda d: "Donor Found for Your Blood Request",
        lambda d: (
            "<h2>Donor Found!</h2>"
            f"<p>Dear {_e(d.get('requestorName'))},</p>"
            f"<p>Great news! We have found a donor for your {_e(d.get('bloodGroup'))} blood request.</p>"
            "<p><strong>Donor Contact Information:</strong></p>"
            + _details([
                ("Name", d.get("donorName")),
                ("Email", d.get("donorEmail")),
                ("Phone", d.get("donorPhone")),
            ])
            + "<p>Please coordinate with the donor to arrange the donation.</p>"
        ),
    ),
    "donor_selected": (
        lambda d: "You've Been Selected as a Donor",
        lambda d: (
            "<h2>You've Been Selected as a Donor</h2>"
            f"<p>Dear {_e(d.get('donorName'))},</p>"
            f"<p>Thank you for opting in! You have been selected to donate {_e(d.get('bloodGroup'))} blood.</p>"
            "<p><strong>Requestor Contact Information:</strong></p>"
            + _details([
                ("Name", d.get("requestorName")),
                ("Email", d.get("requestorEmail")),
                ("Phone", d.get("requestorPhone")),
            ])
            + "<p><strong>Donation Details:</strong></p>"
            + _details([
                ("Hospital", d.get("hospitalName")),
                ("Location", d.get("location")),
                ("Date & Time", _format_datetime(d.get("dateTime"))),
            ])
        ),
    ),
    "certificate_ready": (
        lambda d: f"Your Donation Certificate {d.get('certificateNumber')}",
        lambda d: (
            "<h2>Your Donation Certificate Is Ready</h2>"
            f"<p>Dear {_e(d.get('donorName'))},</p>"
            "<p>Thank you for your life-saving donation.</p>"
            + _details([
                ("Certificate Number", d.get("certificateNumber")),
                ("Donation Date", d.get("donationDate")),
                ("Blood Group", d.get("bloodGroup")),
                ("Units", d.get("units")),
                ("Hospital", d.get("hospitalName")),
            ])
        ),
    ),
}


def render_email(template_key: str, data: dict) -> tuple[str, str]:
    """Render (subject, html) for a template key. Raises KeyError for unknown keys."""
    subject_builder, html_builder = TEMPLATES[template_key]
    return subject_builder(data), html_builder(data)


class SmtpEmailSender:
    """EmailCollaborator backed by an SMTP relay.

    Sending is skipped (returns False) when SMTP_HOST is not configured.
    Transport errors propagate so the dispatcher can log them.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    def send(self, to: list[str], template_key: str, data: dict) -> bool:
        if not self.settings.smtp_host:
            logger.warning(f"SMTP not configured, skipping '{template_key}' email")
            return False
        if not to:
            return False

        subject, html_content = render_email(template_key, data)

        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.settings.smtp_from_email
        msg["To"] = ", ".join(to)

        # Plain text fallback
        plain_text = html_content.replace("<br>", "\n").replace("</p>", "\n\n").replace("</li>", "\n")
        plain_text = re.sub(r"<[^>]+>", "", plain_text)

        msg.attach(MIMEText(plain_text, "plain"))
        msg.attach(MIMEText(html_content, "html"))

        with smtplib.SMTP(self.settings.smtp_host, self.settings.smtp_port) as server:
            server.starttls()
            if self.settings.smtp_user and self.settings.smtp_password:
                server.login(self.settings.smtp_user, self.settings.smtp_password)
            server.send_message(msg)
        logger.info(f"Email '{template_key}' sent to {len(to)} recipient(s)")
        return True
