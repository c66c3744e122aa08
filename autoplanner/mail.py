"""Host mail access: where the draft's title and description come from."""

import html
import logging
import re
from datetime import date
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import getaddresses
from pathlib import Path
from typing import Protocol

from autoplanner.models import TaskDraft

logger = logging.getLogger(__name__)

_TAG = re.compile(r"<[^>]+>")
_BLANK_LINES = re.compile(r"\n{3,}")


class HostMailAccessor(Protocol):
    user_address: str | None

    def get_subject(self) -> str: ...

    def get_body(self) -> str: ...


def _html_to_text(markup: str) -> str:
    markup = re.sub(r"(?is)<(script|style).*?</\1>", "", markup)
    markup = re.sub(r"(?i)<br\s*/?>|</p>|</div>", "\n", markup)
    text = html.unescape(_TAG.sub("", markup))
    return _BLANK_LINES.sub("\n\n", text).strip()


class EmlMailAccessor:
    """Reads the subject, plain-text body and recipient of an RFC 822 file."""

    def __init__(self, path: Path) -> None:
        with path.open("rb") as fp:
            self._message: EmailMessage = BytesParser(policy=policy.default).parse(fp)  # type: ignore[assignment]
        recipients = getaddresses(self._message.get_all("Delivered-To", []) + self._message.get_all("To", []))
        self.user_address = next((addr for _, addr in recipients if addr), None)

    def get_subject(self) -> str:
        return str(self._message.get("Subject", "")).strip()

    def get_body(self) -> str:
        part = self._message.get_body(preferencelist=("plain", "html"))
        if part is None:
            logger.info("Message has no text body")
            return ""
        content = part.get_content()
        if part.get_content_subtype() == "html":
            return _html_to_text(content)
        return content.strip()


def draft_from_mail(
    accessor: HostMailAccessor,
    plan_id: str = "",
    *,
    bucket_id: str | None = None,
    due_date: date | None = None,
    assignee_id: str | None = None,
) -> TaskDraft:
    """Seed a TaskDraft from the active message."""
    body = accessor.get_body()
    return TaskDraft(
        plan_id=plan_id,
        title=accessor.get_subject(),
        description=body or None,
        bucket_id=bucket_id,
        due_date=due_date,
        assignee_id=assignee_id,
    )
