"""HTML rendering of an invoice for on-screen preview and capture."""

from __future__ import annotations

from dataclasses import dataclass
from html import escape
from typing import Any, Dict, List, Mapping, Optional

from . import config
from .formatting import fmt_date, fmt_money, fmt_qty, safe_float
from .models import RenderTarget

CONTENT_ELEMENT_ID = "invoice-pdf-content"
CONTENT_SELECTOR = f"#{CONTENT_ELEMENT_ID}"

DEFAULT_SENDER_DETAILS: Dict[str, str] = {
    "name": "Tu Nombre/Empresa Aquí",
    "nit": "Tu NIT/CC Aquí",
    "type": "Persona Natural/Jurídica",
    "address": "Tu Dirección, Ciudad",
    "phone": "Tu Teléfono",
    "email": "tuemail@example.com",
    "bankAccountInfo": "",
    "signatureName": "Nombre del Firmante",
    "signatureCC": "CC. del Firmante",
}

STYLESHEET = """
body { margin: 0; background: #f3f4f6; font-family: Verdana, sans-serif; color: #374151; }
#invoice-pdf-content { background: #ffffff; width: 816px; margin: 0 auto; padding: 40px; font-size: 14px; box-sizing: border-box; }
.row { display: flex; justify-content: space-between; gap: 16px; margin-bottom: 32px; padding-bottom: 16px; border-bottom: 1px solid #d1d5db; }
.logo { height: 128px; max-width: 100%; object-fit: contain; }
.title { text-align: right; }
.title h2 { font-size: 20px; font-weight: 600; margin: 0; color: #1e3a8a; }
.title .number { font-size: 24px; font-weight: 700; margin: 0; }
.label { font-size: 12px; font-weight: 600; color: #6b7280; text-transform: uppercase; letter-spacing: 0.05em; margin: 0 0 4px; }
.muted { color: #4b5563; margin: 0; }
table { width: 100%; table-layout: fixed; border-collapse: collapse; margin-bottom: 32px; text-align: left; }
thead { border-bottom: 2px solid #374151; }
th { padding: 8px 4px; font-size: 12px; font-weight: 600; color: #4b5563; text-transform: uppercase; }
td { padding: 8px 4px; vertical-align: top; border-bottom: 1px solid #d1d5db; }
td.description { white-space: pre-wrap; word-wrap: break-word; }
.center { text-align: center; }
.right { text-align: right; }
.total { display: flex; justify-content: flex-end; margin-bottom: 32px; }
.total div { display: flex; justify-content: space-between; min-width: 250px; padding: 8px; background: #f3f4f6; font-weight: 700; text-transform: uppercase; }
.notes { font-size: 12px; color: #4b5563; white-space: pre-line; margin-bottom: 32px; }
.signature { padding-top: 48px; margin-top: 48px; border-top: 2px dotted #9ca3af; }
.signature img { height: 64px; object-fit: contain; }
.signature .line { width: 192px; height: 48px; border-bottom: 1px solid #9ca3af; margin-bottom: 8px; }
.footer { text-align: center; font-size: 12px; color: #6b7280; padding-top: 32px; margin-top: 32px; border-top: 1px solid #d1d5db; }
"""


def _get(data: Optional[Mapping[str, Any]], *names: str, default: Any = "") -> Any:
    if not data:
        return default
    for name in names:
        value = data.get(name)
        if value is not None:
            return value
    return default


def _text(value: Any) -> str:
    return escape(str(value))


@dataclass(frozen=True)
class LineTotal:
    position: int
    description: str
    quantity: float
    unit: str
    unit_price: float

    @property
    def amount(self) -> float:
        return self.quantity * self.unit_price


class InvoiceView:
    def __init__(self, data: Mapping[str, Any]) -> None:
        self.invoice: Mapping[str, Any] = data.get("invoice") or {}
        self.client: Mapping[str, Any] = data.get("client") or self.invoice.get("client") or {}
        self.sender: Dict[str, Any] = {**DEFAULT_SENDER_DETAILS, **(data.get("sender") or {})}
        self.lines = self._collect_lines()

    def _collect_lines(self) -> List[LineTotal]:
        items = _get(self.invoice, "lineItems", "line_items", "items", default=[]) or []
        return [
            LineTotal(
                position=index,
                description=str(_get(item, "description")),
                quantity=safe_float(_get(item, "quantity", default=0), 0.0),
                unit=str(_get(item, "unit")),
                unit_price=safe_float(_get(item, "unitPrice", "unit_price", default=0), 0.0),
            )
            for index, item in enumerate(items, start=1)
        ]

    @property
    def total(self) -> float:
        return sum(line.amount for line in self.lines)

    @property
    def invoice_number(self) -> str:
        return str(_get(self.invoice, "invoiceNumber", "invoice_number", "number"))

    @property
    def client_name(self) -> str:
        return str(_get(self.client, "name")) or "Cliente"

    def file_base_name(self, prefix: str = config.FILE_PREFIX) -> str:
        return f"{prefix}-{self.invoice_number} {self.client_name}"

    def render_header(self) -> str:
        logo_url = _get(self.sender, "logoUrl", "logo_url")
        logo = f'<img class="logo" src="{_text(logo_url)}" alt="Logo">' if logo_url else ""
        return (
            '<div class="row">'
            f"<div>{logo}</div>"
            '<div class="title">'
            "<h2>CUENTA DE COBRO</h2>"
            f'<p class="number">{_text(self.invoice_number)}</p>'
            f'<p class="muted"><strong>Fecha:</strong> {_text(fmt_date(_get(self.invoice, "date")))}</p>'
            "</div></div>"
        )

    def render_client(self) -> str:
        client = self.client
        return (
            '<div class="row"><div>'
            '<h3 class="label">Cliente:</h3>'
            f"<p><strong>{_text(self.client_name)}</strong></p>"
            f'<p class="muted">NIT/CC: {_text(_get(client, "nitOrCc", "nit_or_cc"))}</p>'
            f'<p class="muted">Dirección: {_text(_get(client, "address"))}</p>'
            f'<p class="muted">Teléfono: {_text(_get(client, "phone"))}</p>'
            f'<p class="muted">Ciudad: {_text(_get(client, "city"))}</p>'
            "</div></div>"
        )

    def render_items(self) -> str:
        rows = "".join(
            "<tr>"
            f'<td class="center">{line.position}</td>'
            f'<td class="description">{_text(line.description)}</td>'
            f'<td class="right">{fmt_qty(line.quantity)}</td>'
            f'<td class="center">{_text(line.unit)}</td>'
            f'<td class="right">{fmt_money(line.unit_price)}</td>'
            f'<td class="right">{fmt_money(line.amount)}</td>'
            "</tr>"
            for line in self.lines
        )
        return (
            "<table><thead><tr>"
            '<th class="center" style="width:5%">Ítem</th>'
            '<th style="width:45%">Descripción</th>'
            '<th class="right" style="width:10%">Cantidad</th>'
            '<th class="center" style="width:10%">Unidad</th>'
            '<th class="right" style="width:15%">Vr. Unitario</th>'
            '<th class="right" style="width:15%">Vr. Total</th>'
            f"</tr></thead><tbody>{rows}</tbody></table>"
            f'<div class="total"><div><span>Valor Total</span><span>{fmt_money(self.total)}</span></div></div>'
        )

    def render_notes(self) -> str:
        notes = str(_get(self.invoice, "notes")).strip()
        if not notes:
            return ""
        return f'<p class="notes">{_text(notes)}</p>'

    def render_signature(self) -> str:
        sender = self.sender
        image_url = _get(sender, "signatureImageUrl", "signature_image_url")
        mark = f'<img src="{_text(image_url)}" alt="Firma Autorizada">' if image_url else '<div class="line"></div>'
        return (
            f'<div class="signature">{mark}'
            f'<p><strong>{_text(_get(sender, "signatureName"))}</strong></p>'
            f'<p class="muted">{_text(_get(sender, "signatureCC"))}</p>'
            "</div>"
        )

    def render_footer(self) -> str:
        sender = self.sender
        parts = [_get(sender, "name"), _get(sender, "address"), f'Cel. {_get(sender, "phone")}', _get(sender, "email")]
        return f'<div class="footer"><p>{_text(" - ".join(str(part) for part in parts))}</p></div>'

    def render(self) -> str:
        body = "".join(
            [
                self.render_header(),
                self.render_client(),
                self.render_items(),
                self.render_notes(),
                self.render_signature(),
                self.render_footer(),
            ]
        )
        return (
            "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
            f"<title>{_text(self.file_base_name())}</title>"
            f"<style>{STYLESHEET}</style></head>"
            f'<body><div id="{CONTENT_ELEMENT_ID}">{body}</div></body></html>'
        )

    def render_target(self, key: Optional[str] = None) -> RenderTarget:
        invoice_id = _get(self.invoice, "id", default=None)
        if key is None and invoice_id is not None:
            key = f"invoice:{invoice_id}"
        return RenderTarget(selector=CONTENT_SELECTOR, html=self.render(), key=key)


def render_invoice_html(data: Mapping[str, Any]) -> str:
    return InvoiceView(data).render()
