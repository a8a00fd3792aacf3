import logging
import smtplib
from email.message import EmailMessage
from typing import Iterable, Optional, Tuple

from .. import config

logger = logging.getLogger(__name__)


class EmailNotifier:
    """
    Sends signing invitations and completion notices over SMTP.

    Without SMTP credentials the message is only logged. Delivery failures are
    logged and never fail the request that triggered them.
    """

    def __init__(
        self,
        host: str = config.SMTP_HOST,
        port: int = config.SMTP_PORT,
        user: str = config.SMTP_USER,
        password: str = config.SMTP_PASS,
        sender: Optional[str] = config.SMTP_FROM,
    ):
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.sender = sender or user

    @property
    def enabled(self) -> bool:
        return bool(self.user and self.password)

    def _deliver(self, to: str, subject: str, body: str, attachment: Optional[Tuple[str, bytes]] = None) -> bool:
        if not self.enabled:
            logger.info("Email would be sent to %s: %s\n%s", to, subject, body)
            return False

        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = to
        msg["Subject"] = subject
        msg.set_content(body)
        if attachment:
            filename, data = attachment
            msg.add_attachment(data, maintype="application", subtype="pdf", filename=filename)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=30) as smtp:
                smtp.starttls()
                smtp.login(self.user, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError):
            logger.exception("Failed to send email to %s", to)
            return False
        logger.info("Email sent to %s", to)
        return True

    def send_signing_request(self, signer, document, subject: Optional[str] = None, message: Optional[str] = None) -> bool:
        link = config.signing_link(signer.token)
        lines = [
            f"Hello {signer.name},",
            "",
            "You have been invited to sign the following document:",
            "",
            f"Document: {document.name}",
        ]
        if message:
            lines += ["", f"Message from sender: {message}"]
        lines += [
            "",
            "To get started, open the link below:",
            link,
            "",
            "This is an automated message. Please do not reply directly to this email.",
        ]
        return self._deliver(
            signer.email,
            subject or f"Signature requested: {document.name}",
            "\n".join(lines),
        )

    def send_document(
        self,
        document,
        sender_name: str,
        sender_email: str,
        recipient_name: str,
        recipient_email: str,
        message: Optional[str] = None,
        attachment: Optional[bytes] = None,
    ) -> int:
        """
        Email a copy of ``document`` to the recipient, and a confirmation copy
        to the sender. The PDF is attached when ``attachment`` is given.

        Returns:
            int: number of messages delivered
        """
        lines = [
            f"Hello {recipient_name},",
            "",
            f"{sender_name} ({sender_email}) has shared \"{document.name}\" with you.",
        ]
        if message:
            lines += ["", f"Message from sender: {message}"]
        if attachment is None:
            lines += ["", "The file could not be attached; ask the sender for a copy."]
        body = "\n".join(lines)
        subject = f"Document from {sender_name}: {document.name}"
        pdf = (document.name, attachment) if attachment is not None else None

        sent = 0
        for to in (recipient_email, sender_email):
            if self._deliver(to, subject, body, pdf):
                sent += 1
        return sent

    def send_completion_notice(self, document, recipients: Iterable[str]) -> int:
        body = (
            f'All signers have completed "{document.name}".\n\n'
            "The signed copy is available from the document page."
        )
        sent = 0
        for email in recipients:
            if self._deliver(email, f"Completed: {document.name}", body):
                sent += 1
        return sent


_default_notifier = None


def get_notifier() -> EmailNotifier:
    global _default_notifier
    if _default_notifier is None:
        _default_notifier = EmailNotifier()
    return _default_notifier


def completion_recipients(document) -> list:
    """Signers plus any cc recipients kept on the document metadata."""
    emails = [s.email for s in document.signers]
    for cc in (document.meta or {}).get("cc", []):
        if cc.get("email") and cc["email"] not in emails:
            emails.append(cc["email"])
    return emails
