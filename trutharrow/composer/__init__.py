from .composer import Composer, PublishNotice
from .validation import sanitize_html, sanitize_input, validate_draft, validate_tip

__all__ = ["Composer", "PublishNotice", "sanitize_html", "sanitize_input", "validate_draft", "validate_tip"]
