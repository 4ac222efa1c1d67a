from __future__ import annotations

from dataclasses import replace
from typing import Annotated, Optional

from pydantic import BaseModel, StringConstraints, field_validator, validate_email
from pydantic import ValidationError as PydanticValidationError

from ..errors import ValidationError
from ..models import Draft, DraftVariant, Tip

ALIAS_PATTERN = r"^[a-zA-Z0-9_ -]+$"
MAX_ALIAS_LENGTH = 30
MAX_COMPOSE_LENGTH = 500
MAX_POST_LENGTH = 2000
MAX_INPUT_LENGTH = 5000
MAX_TITLE_LENGTH = 200
MIN_WHAT_LENGTH = 10
MAX_WHAT_LENGTH = 5000
MAX_WHEN_LENGTH = 500
MAX_VERIFY_LENGTH = 2000
MAX_CONTACT_LENGTH = 255

Alias = Annotated[
    str,
    StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_ALIAS_LENGTH, pattern=ALIAS_PATTERN),
]


class PostForm(BaseModel):
    content: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_POST_LENGTH)]
    alias: Alias
    parent_id: Optional[str] = None


class ComposeForm(PostForm):
    content: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_COMPOSE_LENGTH)]


class SubmissionForm(BaseModel):
    title: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_TITLE_LENGTH)]
    what: Annotated[
        str, StringConstraints(strip_whitespace=True, min_length=MIN_WHAT_LENGTH, max_length=MAX_WHAT_LENGTH)
    ]
    verify: Annotated[str, StringConstraints(strip_whitespace=True, min_length=1, max_length=MAX_VERIFY_LENGTH)]
    when_where: Optional[Annotated[str, StringConstraints(max_length=MAX_WHEN_LENGTH)]] = None
    contact: Optional[Annotated[str, StringConstraints(max_length=MAX_CONTACT_LENGTH)]] = None

    @field_validator("when_where", "contact", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if isinstance(value, str):
            value = value.strip()
            return value or None
        return value

    @field_validator("contact")
    @classmethod
    def _email(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        _, email = validate_email(value)
        return email


FORMS: dict[DraftVariant, type[PostForm]] = {
    DraftVariant.COMPOSE: ComposeForm,
    DraftVariant.REPLY: PostForm,
    DraftVariant.POST: PostForm,
}

_MESSAGES = {
    ("content", "string_too_short"): "Post content is required",
    ("alias", "string_too_short"): "Alias is required",
    ("alias", "string_pattern_mismatch"): "Alias can only contain letters, numbers, spaces, hyphens, and underscores",
    ("title", "string_too_short"): "Title is required",
    ("what", "string_too_short"): f"Description must be at least {MIN_WHAT_LENGTH} characters",
    ("verify", "string_too_short"): "Verification information is required",
    ("contact", "value_error"): "Invalid email address",
}

_LABELS = {
    "alias": "Alias",
    "content": "Post",
    "title": "Title",
    "what": "Description",
    "when_where": "When/where",
    "verify": "Verification",
    "contact": "Contact",
}


def _message(field: str, error_type: str, ctx: dict) -> str:
    known = _MESSAGES.get((field, error_type))
    if known:
        return known
    if error_type == "string_too_long":
        label = _LABELS.get(field, field.capitalize())
        return f"{label} must be at most {ctx.get('max_length')} characters"
    return f"Invalid {field}"


def _field_errors(exc: PydanticValidationError) -> dict[str, str]:
    field_errors: dict[str, str] = {}
    for error in exc.errors():
        field = str(error["loc"][0]) if error["loc"] else "form"
        field_errors.setdefault(field, _message(field, error["type"], error.get("ctx") or {}))
    return field_errors


def validate_draft(draft: Draft) -> Draft:
    """Return a trimmed copy of ``draft`` or raise ``ValidationError``."""
    form_cls = FORMS[draft.variant]
    try:
        form = form_cls(content=draft.content, alias=draft.alias, parent_id=draft.parent_id)
    except PydanticValidationError as exc:
        raise ValidationError(_field_errors(exc)) from exc
    return replace(draft, content=form.content, alias=form.alias, parent_id=form.parent_id or None)


def sanitize_html(text: str) -> str:
    return (
        text.replace("<", "&lt;")
        .replace(">", "&gt;")
        .replace('"', "&quot;")
        .replace("'", "&#x27;")
        .replace("/", "&#x2F;")
    )


def sanitize_input(text: str) -> str:
    return text.strip()[:MAX_INPUT_LENGTH]


def validate_tip(tip: Tip) -> Tip:
    """Return a trimmed copy of ``tip`` or raise ``ValidationError``."""
    try:
        form = SubmissionForm(
            title=tip.title,
            what=tip.what,
            verify=tip.verify,
            when_where=tip.when_where,
            contact=tip.contact,
        )
    except PydanticValidationError as exc:
        raise ValidationError(_field_errors(exc)) from exc
    return Tip(
        title=form.title,
        what=form.what,
        verify=form.verify,
        when_where=form.when_where,
        contact=form.contact,
    )
