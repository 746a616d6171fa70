from pathlib import Path
from datetime import datetime, timezone
import logging

from sharedrop.core.config import settings

logger = logging.getLogger("sharedrop.email")


def send_local_email(to_email: str, subject: str, body: str) -> str:
    """Drop a message into the local outbox directory and return its path."""
    outbox = Path(settings.email_log_dir)
    outbox.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S%fZ")
    safe_email = to_email.replace("@", "_at_")
    filename = outbox / f"email_{timestamp}_{safe_email}.txt"

    content = f"To: {to_email}\nSubject: {subject}\n\n{body}\n"
    filename.write_text(content)
    logger.info("queued email %r to %s", subject, to_email)

    return str(filename)


def notify_file_block(to_email: str, file_name: str, blocked: bool, reason: str | None = None) -> str:
    action = "blocked" if blocked else "unblocked"
    body = f"Your file '{file_name}' has been {action} by an administrator."
    if blocked:
        body += f"\nReason: {reason or 'No specified reason'}"
    return send_local_email(to_email, f"File {action}: {file_name}", body)
