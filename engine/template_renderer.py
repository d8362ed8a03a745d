import re
from typing import Any, List, Mapping, Optional, Set

from models.template import EmailTemplate, EmailSignature, RenderedMessage
from utils.formatting import stringify

PLACEHOLDER = re.compile(r"\{\{([A-Za-z_][A-Za-z0-9_]*)\}\}")


class TemplateRenderer:
    """
    Substitutes ``{{name}}`` placeholders. Placeholders without a value are
    left untouched so a missing optional variable never blocks delivery.
    Rendering is pure: no store or network access.
    """

    def render_text(self, text: str, variables: Mapping[str, Any]) -> str:
        if not text:
            return ""

        def _replace(match: re.Match) -> str:
            name = match.group(1)
            if name in variables:
                return stringify(variables[name])
            return match.group(0)

        return PLACEHOLDER.sub(_replace, text)

    def render(self, template: EmailTemplate, variables: Mapping[str, Any]) -> RenderedMessage:
        return RenderedMessage(
            subject=self.render_text(template.subject, variables),
            html=self.render_text(template.html_body, variables),
            text=self.render_text(template.text_body, variables),
        )

    @staticmethod
    def placeholders(text: str) -> Set[str]:
        return set(PLACEHOLDER.findall(text or ""))

    def missing_variables(self, template: EmailTemplate, variables: Mapping[str, Any]) -> List[str]:
        """Placeholders used by the template that the variables do not cover."""
        used = set()
        for text in (template.subject, template.html_body, template.text_body):
            used |= self.placeholders(text)
        return sorted(name for name in used if name not in variables)


def append_signature(message: RenderedMessage, signature: Optional[EmailSignature]) -> RenderedMessage:
    """Adds the global signature: before </body> in html, appended to text."""
    if not signature or not signature.enabled:
        return message

    html = message.html
    if html and signature.html_signature:
        if "</body>" in html:
            html = html.replace("</body>", f"{signature.html_signature}</body>", 1)
        else:
            html = html + signature.html_signature

    text = message.text
    if text and signature.text_signature:
        text = text + signature.text_signature

    return RenderedMessage(subject=message.subject, html=html, text=text)
