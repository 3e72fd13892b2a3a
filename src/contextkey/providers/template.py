from __future__ import annotations
import logging

logger = logging.getLogger(__name__)

INPUT_MARKER = "{{input}}"

# Order matters: backslashes first, or the backslashes added by the
# later rules would be escaped a second time.
_ESCAPES = (
    ("\\", "\\\\"),
    ('"', '\\"'),
    ("\n", "\\n"),
    ("\r", "\\r"),
    ("\t", "\\t"),
)


def escape_json_string(text: str) -> str:
    for raw, escaped in _ESCAPES:
        text = text.replace(raw, escaped)
    return text


def render_template(template: str, text: str) -> str:
    """
    Substitute every {{input}} marker with `text` escaped for a JSON string literal.
    The template itself is left alone; a template without a marker comes back unchanged.
    """
    if INPUT_MARKER not in template:
        logger.debug("Body template has no %s marker; sending it unchanged", INPUT_MARKER)
        return template
    return template.replace(INPUT_MARKER, escape_json_string(text))
