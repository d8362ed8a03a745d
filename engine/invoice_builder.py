import logging
from typing import Dict, Optional

from jinja2 import Environment, FileSystemLoader, Template, TemplateNotFound, select_autoescape

from models.invoice import Invoice
from utils.formatting import format_euro
from utils.time_utils import to_german_date

logger = logging.getLogger("storefront_notifications")

DEFAULT_TEMPLATE_ID = "default"

DEFAULT_INVOICE_TEMPLATE = """<!DOCTYPE html>
<html lang="de">
<head><meta charset="utf-8"><title>Rechnung {{ invoice.number }}</title></head>
<body>
  <h1>Rechnung {{ invoice.number }}</h1>
  <p>Datum: {{ invoice.issue_date | german_date }}</p>
  <p>{{ invoice.customer.name }}</p>
  <table>
    <tr><th>Artikel</th><th>Menge</th><th>Einzelpreis</th><th>Gesamt</th></tr>
    {% for item in invoice.items %}
    <tr><td>{{ item.description }}</td><td>{{ item.quantity }} {{ item.unit }}</td>
        <td>{{ item.unit_price | euro }}</td><td>{{ item.total | euro }}</td></tr>
    {% endfor %}
  </table>
  <p>Netto: {{ invoice.net_total | euro }}</p>
  <p>MwSt. {{ invoice.tax_rate }} %: {{ invoice.tax_amount | euro }}</p>
  <p><strong>Gesamt: {{ invoice.gross_total | euro }}</strong></p>
</body>
</html>
"""


class InvoiceBuilder:
    """
    Renders invoice HTML from Jinja2 templates stored as
    ``<template_dir>/<template_id>.html.j2``. Compiled templates are kept
    per id until ``clear_template_cache`` is called; an id without a file
    falls back to the built-in default (and that fallback is cached too).
    """

    def __init__(self, template_dir: str):
        # cache_size=0: this class owns caching, so clearing it takes effect immediately
        self.env = Environment(
            loader=FileSystemLoader(template_dir),
            autoescape=select_autoescape(["html", "j2"]),
            cache_size=0,
        )
        self.env.filters["euro"] = format_euro
        self.env.filters["german_date"] = to_german_date
        self._template_cache: Dict[str, Template] = {}

    def get_template(self, template_id: Optional[str] = None) -> Template:
        template_id = template_id or DEFAULT_TEMPLATE_ID
        template = self._template_cache.get(template_id)
        if template is not None:
            return template
        try:
            template = self.env.get_template(f"{template_id}.html.j2")
        except TemplateNotFound:
            logger.warning(f"Invoice template '{template_id}' not found, using built-in default")
            template = self.env.from_string(DEFAULT_INVOICE_TEMPLATE)
        self._template_cache[template_id] = template
        return template

    def render(self, invoice: Invoice, template_id: Optional[str] = None) -> str:
        return self.get_template(template_id).render(invoice=invoice)

    def cached_template_ids(self):
        return sorted(self._template_cache)

    def clear_template_cache(self):
        self._template_cache.clear()
        logger.info("Invoice template cache cleared")
