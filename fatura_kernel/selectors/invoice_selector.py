"""
Module: fatura_kernel.selectors.invoice_selector
Responsibility: Read-side queries over invoices and their items.
Architecture position: Kernel > Selectors.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from fatura_kernel.domain.competencia import closing_date_for
from fatura_kernel.domain.dtos import InvoiceInfo, InvoiceItemInfo, InvoiceWithItems
from fatura_kernel.exceptions import NotFoundError
from fatura_kernel.models import Card, Invoice, InvoiceItem, InvoiceStatus
from fatura_kernel.selectors.base import BaseSelector


class InvoiceSelector(BaseSelector):
    """Queries invoices by card, status and due cycle."""

    def list_invoices(
        self,
        card_id: UUID,
        status: InvoiceStatus | str | None = None,
        *,
        tenant_id: str | None = None,
    ) -> list[InvoiceInfo]:
        """Invoices of a card, newest cycle first, optionally by status."""
        stmt = select(Invoice).where(Invoice.card_id == card_id)
        if status is not None:
            stmt = stmt.where(Invoice.status == InvoiceStatus(status).value)
        if tenant_id is not None:
            stmt = stmt.where(Invoice.tenant_id == tenant_id)
        stmt = stmt.order_by(Invoice.competencia.desc())
        with self.storage.read_session() as session:
            return [
                InvoiceInfo.from_model(row)
                for row in session.execute(stmt).scalars().all()
            ]

    def get_invoice(self, invoice_id: UUID, *, tenant_id: str | None = None) -> InvoiceInfo:
        with self.storage.read_session() as session:
            return InvoiceInfo.from_model(self._require(session, invoice_id, tenant_id))

    def get_invoice_with_items(
        self,
        invoice_id: UUID,
        *,
        tenant_id: str | None = None,
    ) -> InvoiceWithItems:
        """
        The invoice and its non-deleted items in purchase order.

        Raises:
            NotFoundError: no such invoice (for the tenant, if given).
        """
        with self.storage.read_session() as session:
            invoice = self._require(session, invoice_id, tenant_id)
            items = session.execute(
                select(InvoiceItem)
                .where(
                    InvoiceItem.invoice_id == invoice.id,
                    InvoiceItem.is_deleted.is_(False),
                )
                .order_by(InvoiceItem.purchase_date, InvoiceItem.created_at)
            ).scalars().all()
            return InvoiceWithItems(
                invoice=InvoiceInfo.from_model(invoice),
                items=tuple(InvoiceItemInfo.from_model(item) for item in items),
            )

    def find_open_invoices_due(
        self, tenant_id: str, as_of: date
    ) -> list[tuple[InvoiceInfo, date]]:
        """Open invoices whose statement date is on or before ``as_of``, with that date."""
        stmt = (
            select(Invoice, Card.closing_day)
            .join(Card, Card.id == Invoice.card_id)
            .where(
                Invoice.tenant_id == tenant_id,
                Invoice.status == InvoiceStatus.OPEN.value,
            )
            .order_by(Invoice.competencia)
        )
        due: list[tuple[InvoiceInfo, date]] = []
        with self.storage.read_session() as session:
            for invoice, closing_day in session.execute(stmt).all():
                statement_date = closing_date_for(invoice.competencia, closing_day)
                if statement_date <= as_of:
                    due.append((InvoiceInfo.from_model(invoice), statement_date))
        return due

    @staticmethod
    def _require(session, invoice_id: UUID, tenant_id: str | None) -> Invoice:
        stmt = select(Invoice).where(Invoice.id == invoice_id)
        if tenant_id is not None:
            stmt = stmt.where(Invoice.tenant_id == tenant_id)
        invoice = session.execute(stmt).scalars().first()
        if invoice is None:
            raise NotFoundError("Invoice", str(invoice_id))
        return invoice
