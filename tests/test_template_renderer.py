from engine.template_renderer import TemplateRenderer, append_signature
from models.template import EmailSignature, RenderedMessage
from tests.conftest import make_template


def test_shipping_notification_renders_german_body():
    renderer = TemplateRenderer()
    template = make_template(text_body="Hallo {{customer_name}}, Bestellung {{order_number}} ist unterwegs.")

    message = renderer.render(template, {"customer_name": "Max Mustermann", "order_number": "BK-2025-001"})

    assert message.text == "Hallo Max Mustermann, Bestellung BK-2025-001 ist unterwegs."
    assert message.subject == "Ihre Bestellung BK-2025-001"


def test_unknown_placeholder_is_left_verbatim():
    renderer = TemplateRenderer()
    assert renderer.render_text("Hallo {{unknown}}!", {"name": "Max"}) == "Hallo {{unknown}}!"


def test_rendering_is_idempotent():
    renderer = TemplateRenderer()
    template = make_template()
    variables = {"customer_name": "Erika", "order_number": "BK-1"}
    assert renderer.render(template, variables) == renderer.render(template, variables)


def test_values_are_stringified():
    renderer = TemplateRenderer()
    text = "{{a}}|{{b}}|{{c}}"
    assert renderer.render_text(text, {"a": None, "b": 5, "c": ["x", "y"]}) == "|5|x\ny"


def test_placeholder_with_spaces_is_not_substituted():
    renderer = TemplateRenderer()
    assert renderer.render_text("{{ name }}", {"name": "Max"}) == "{{ name }}"


def test_missing_variables_lists_uncovered_placeholders():
    renderer = TemplateRenderer()
    template = make_template()
    assert renderer.missing_variables(template, {"customer_name": "Max"}) == ["order_number"]


def test_signature_goes_before_closing_body():
    message = RenderedMessage(subject="s", html="<html><body><p>Hi</p></body></html>", text="Hi")
    signature = EmailSignature(enabled=True, html_signature="<p>Gruß</p>", text_signature="\n-- Gruß")

    signed = append_signature(message, signature)

    assert signed.html == "<html><body><p>Hi</p><p>Gruß</p></body></html>"
    assert signed.text == "Hi\n-- Gruß"


def test_disabled_signature_is_ignored():
    message = RenderedMessage(subject="s", html="<p>Hi</p>", text="Hi")
    assert append_signature(message, EmailSignature(enabled=False, html_signature="x")) == message
    assert append_signature(message, None) == message


def test_booleans_render_lowercase():
    renderer = TemplateRenderer()
    assert renderer.render_text("{{a}}/{{b}}", {"a": True, "b": False}) == "true/false"
