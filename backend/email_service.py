"""
Email service for delivering invoices to clients.
Uses Postmark HTTP API for email delivery.
"""

import base64
import httpx
import logging
from html import escape
from typing import Optional

from config import settings
from exceptions import DeliveryFailed

logger = logging.getLogger(__name__)


def generate_invoice_email_html(body_text: str, company_name: str = "") -> str:
    """Generate HTML email wrapping the invoice message"""

    body_html = escape(body_text).replace("\n", "<br>")
    company_name = escape(company_name or "")

    return f"""<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <style>
        body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; margin: 0; padding: 0; }}
        .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
        .content {{ padding: 30px; background: #f9fafb; border-radius: 8px; }}
        .footer {{ text-align: center; padding: 20px; color: #6b7280; font-size: 12px; }}
    </style>
</head>
<body>
    <div class="container">
        <div class="content">
            <p>{body_html}</p>
            <p style="margin-top: 20px;">The invoice is attached to this email as a PDF.</p>
        </div>
        <div class="footer">
            {f'<p>Sent on behalf of {company_name}</p>' if company_name else ''}
        </div>
    </div>
</body>
</html>"""


def generate_invoice_email_plain(body_text: str, company_name: str = "") -> str:
    """Generate plain text email (fallback)"""

    footer = f"\n---\nSent on behalf of {company_name}\n" if company_name else ""
    return f"""{body_text}

The invoice is attached to this email as a PDF.
{footer}"""


class EmailService:
    """Async email service using Postmark HTTP API"""

    POSTMARK_API_URL = "https://api.postmarkapp.com/email"

    def __init__(
        self,
        server_token: str = None,
        from_email: str = None,
        from_name: str = None,
        enabled: bool = None,
        test_mode: bool = None,
        transport: httpx.AsyncBaseTransport = None
    ):
        self.server_token = server_token if server_token is not None else settings.POSTMARK_SERVER_TOKEN
        self.from_email = from_email or settings.POSTMARK_FROM_EMAIL
        self.from_name = from_name or settings.POSTMARK_FROM_NAME
        self.enabled = settings.POSTMARK_ENABLED if enabled is None else enabled
        self.test_mode = settings.EMAIL_TEST_MODE if test_mode is None else test_mode
        self.transport = transport

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        plain_content: str,
        pdf_attachment: bytes = None,
        pdf_filename: str = None
    ) -> bool:
        """
        Send email via Postmark HTTP API.

        Args:
            to_email: Recipient email address
            subject: Email subject line
            html_content: HTML version of email
            plain_content: Plain text fallback
            pdf_attachment: Optional PDF bytes to attach
            pdf_filename: Attachment file name

        Returns:
            True if email sent successfully, False otherwise
        """

        # Test mode - log email instead of sending
        if self.test_mode:
            logger.info(
                f"[TEST MODE] Email would be sent to: {to_email} | Subject: {subject} | "
                f"Attachment: {pdf_filename or 'none'}\n{plain_content}"
            )
            return True

        if not self.enabled:
            logger.warning(f"Postmark disabled - email not sent to {to_email}")
            return False

        if not self.server_token:
            logger.error(f"POSTMARK_SERVER_TOKEN not configured - email not sent to {to_email}")
            return False

        try:
            headers = {
                "Accept": "application/json",
                "Content-Type": "application/json",
                "X-Postmark-Server-Token": self.server_token
            }

            payload = {
                "From": f"{self.from_name} <{self.from_email}>",
                "To": to_email,
                "Subject": subject,
                "HtmlBody": html_content,
                "TextBody": plain_content,
                "MessageStream": "outbound"
            }

            if pdf_attachment and pdf_filename:
                payload["Attachments"] = [
                    {
                        "Name": pdf_filename,
                        "Content": base64.b64encode(pdf_attachment).decode('utf-8'),
                        "ContentType": "application/pdf"
                    }
                ]

            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.post(
                    self.POSTMARK_API_URL,
                    headers=headers,
                    json=payload,
                    timeout=30.0
                )

                if response.status_code == 200:
                    logger.info(f"Email sent successfully to {to_email}")
                    return True

                logger.error(f"Postmark API error for {to_email}: {response.status_code} - {response.text}")
                return False

        except httpx.TimeoutException:
            logger.error(f"Timeout sending email to {to_email}")
            return False

        except httpx.HTTPError as e:
            logger.error(f"Failed to send email to {to_email}: {str(e)}")
            return False

    async def fetch_artifact(self, artifact_url: str) -> bytes:
        """Download a stored invoice PDF from its public URL"""
        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                response = await client.get(artifact_url, timeout=30.0)
                response.raise_for_status()
                return response.content
        except httpx.HTTPError as e:
            logger.error(f"Failed to fetch invoice PDF from {artifact_url}: {str(e)}")
            raise DeliveryFailed(f"Could not fetch invoice PDF from {artifact_url}") from e

    async def send_invoice_email(
        self,
        recipient_email: str,
        subject: str,
        body_text: str,
        artifact_url: Optional[str],
        pdf_bytes: Optional[bytes] = None,
        filename: str = "invoice.pdf",
        company_name: str = ""
    ) -> None:
        """
        Email an invoice PDF to a client.

        Uses pdf_bytes when the PDF was just rendered in-process, otherwise
        downloads it from artifact_url. Does not retry.

        Raises:
            DeliveryFailed: If the PDF cannot be fetched or the email is not accepted
        """
        if pdf_bytes is None:
            if not artifact_url:
                raise DeliveryFailed("No invoice PDF available to attach")
            pdf_bytes = await self.fetch_artifact(artifact_url)

        sent = await self.send_email(
            to_email=recipient_email,
            subject=subject,
            html_content=generate_invoice_email_html(body_text, company_name),
            plain_content=generate_invoice_email_plain(body_text, company_name),
            pdf_attachment=pdf_bytes,
            pdf_filename=filename
        )

        if not sent:
            raise DeliveryFailed(f"Failed to deliver invoice email to {recipient_email}")

        logger.info(f"Invoice email '{subject}' delivered to {recipient_email}")
