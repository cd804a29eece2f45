# Overview: Registry of form-backed document types and their posting rules.

"""
Document Type Registry

WHY: The approval state machine and the posting engine are the same for
every document; what differs is the number prefix, the permission names,
how a line moves stock, which accounts the stock movement posts against,
and what else the document posts or releases. Each document type is one
DocumentType value; the services dispatch on it instead of subclassing.

Adding a document type means adding a model pair and one registry entry.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable

from ..extensions import db
from ..errors import InvalidData, NotFound
from ..models import Form, StockCorrection, StockCorrectionItem, SalesInvoice, SalesInvoiceItem


@dataclass(frozen=True)
class JournalLeg:
    """One extra journal row a document posts besides its stock pair."""
    feature: str
    name: str
    side: str  # "debit" | "credit"
    amount_cents: int
    journalable_type: str | None = None
    journalable_id: int | None = None


@dataclass(frozen=True)
class DocumentType:
    name: str
    prefix: str
    module: str
    model: type
    line_model: type
    # SettingJournal (feature, name) of the account opposite the item account
    stock_feature: str
    stock_account_name: str
    # Signed quantity a line moves, in the line's own unit
    line_quantity: Callable
    extra_journal_legs: Callable | None = None
    release: Callable | None = None
    search_fields: tuple = field(default=("form.number", "form.notes", "item.name"))

    def permission(self, action: str) -> str:
        return f"{action} {self.module}"

    def line_delta(self, line) -> int:
        """Signed stock movement of a line in the smallest unit."""
        return self.line_quantity(line) * (line.converter or 1)

    def not_found_message(self) -> str:
        return f"{self.module.capitalize()} is not exist"

    def get_document(self, document_id: int):
        document = db.session.get(self.model, document_id)
        if not document:
            raise NotFound(self.not_found_message())
        return document

    def get_form(self, document) -> Form:
        form = (
            db.session.query(Form)
            .filter_by(documentable_type=self.name, documentable_id=document.id)
            .first()
        )
        if not form:
            raise NotFound(self.not_found_message())
        return form

    def lines(self, document) -> list:
        return list(document.items)


def _sales_invoice_legs(form: Form, invoice: SalesInvoice) -> list[JournalLeg]:
    """Receivable against sales income (net of tax) and tax payable."""
    subject = ("Customer", invoice.customer_id)
    return [
        JournalLeg("sales", "account receivable", "debit", invoice.amount_cents, *subject),
        JournalLeg("sales", "sales income", "credit", invoice.amount_cents - invoice.tax_cents, *subject),
        JournalLeg("sales", "income tax payable", "credit", invoice.tax_cents, *subject),
    ]


def _release_reference_form(form: Form, invoice: SalesInvoice) -> None:
    """A cancelled invoice hands its source document back for reuse."""
    if invoice.reference_form_id:
        reference = db.session.get(Form, invoice.reference_form_id)
        if reference:
            reference.done = False


STOCK_CORRECTION = DocumentType(
    name="StockCorrection",
    prefix="SC",
    module="stock correction",
    model=StockCorrection,
    line_model=StockCorrectionItem,
    stock_feature="stock correction",
    stock_account_name="difference stock expenses",
    line_quantity=lambda line: line.quantity,
)

SALES_INVOICE = DocumentType(
    name="SalesInvoice",
    prefix="SI",
    module="sales invoice",
    model=SalesInvoice,
    line_model=SalesInvoiceItem,
    stock_feature="sales",
    stock_account_name="cost of sales",
    line_quantity=lambda line: -line.quantity,
    extra_journal_legs=_sales_invoice_legs,
    release=_release_reference_form,
)

DOCUMENT_TYPES = {
    STOCK_CORRECTION.name: STOCK_CORRECTION,
    SALES_INVOICE.name: SALES_INVOICE,
}


def get_document_type(name: str) -> DocumentType:
    try:
        return DOCUMENT_TYPES[name]
    except KeyError:
        raise InvalidData(f"Unknown document type: {name}")
