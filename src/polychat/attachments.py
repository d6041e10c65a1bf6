"""Attachment validation and message composition.

Reading a file is the UI's job; the core only sees name, MIME type, size and
already-read text. Accepted files are summarized into the outgoing message.
"""

import base64
from typing import List, Optional, Tuple

from pydantic import BaseModel

MAX_ATTACHMENT_BYTES = 10 * 1024 * 1024
ALLOWED_MIME_TYPES = frozenset(
    {
        "text/plain",
        "text/csv",
        "application/pdf",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
        "text/html",
        "application/json",
        "text/markdown",
    }
)


class Attachment(BaseModel):
    name: str
    mime_type: str
    size: int
    content: Optional[str] = None

    @property
    def is_text(self) -> bool:
        return self.mime_type.startswith("text/") or self.mime_type == "application/json"

    def describe(self) -> str:
        return f"[File: {self.name} ({self.mime_type}, {self.size / 1024:.1f}KB)]"


def validate_attachments(files: List[Attachment]) -> Tuple[List[Attachment], List[Attachment]]:
    """Splits ``files`` into (accepted, rejected)."""
    accepted, rejected = [], []
    for file in files:
        if file.size <= MAX_ATTACHMENT_BYTES and file.mime_type in ALLOWED_MIME_TYPES:
            accepted.append(file)
        else:
            rejected.append(file)
    return accepted, rejected


def _render(attachment: Attachment) -> str:
    if attachment.content:
        return f"{attachment.describe()}\n{attachment.content}"
    return attachment.describe()


def compose_message(text: str, attachments: List[Attachment]) -> str:
    """Appends an ``Attached files:`` summary to the typed text."""
    text = (text or "").strip()
    if not attachments:
        return text
    file_info = "\n".join(_render(a) for a in attachments)
    if text:
        return f"{text}\n\nAttached files:\n{file_info}"
    return f"Attached files:\n{file_info}"


def attachment_from_upload(contents: str, filename: str) -> Attachment:
    """Builds an attachment from a Dash ``dcc.Upload`` data URL."""
    header, _, payload = contents.partition(",")
    mime_type = header[len("data:") :].split(";")[0] or "application/octet-stream"
    data = base64.b64decode(payload)
    attachment = Attachment(name=filename, mime_type=mime_type, size=len(data))
    if attachment.is_text:
        attachment.content = data.decode("utf-8", errors="replace")
    return attachment
