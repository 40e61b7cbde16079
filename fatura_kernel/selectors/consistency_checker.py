"""
Module: fatura_kernel.selectors.consistency_checker
Responsibility: Read-only audit of the invoice ledger invariants.  Used on
    demand as an online guard and by the offline ``scripts/audit_ledger.py``.
Architecture position: Kernel > Selectors.

Checks:
    find_orphan_items         -- non-deleted items with a NULL or dangling
                                 invoice reference, or whose competencia
                                 differs from their invoice's.
    find_empty_open_invoices  -- open invoices with no non-deleted items
                                 (candidates for closing at zero).
    find_inconsistent_totals  -- closed/paid invoices whose closed_total no
                                 longer equals the sum of their items.
    find_duplicate_accrual    -- non-deleted items sharing card, competencia,
                                 description, amount and purchase date.
                                 Heuristic only: real repeat purchases
                                 look identical.

The checker reports; it never corrects.  Corrections are separate explicit
operations (close, reopen, remove_item).
"""


from sqlalchemy import and_, exists, func, select

from fatura_kernel.domain.dtos import ConsistencyFinding, ConsistencyReport
from fatura_kernel.domain.money import to_amount
from fatura_kernel.invariants import LedgerInvariant
from fatura_kernel.logging_config import get_logger
from fatura_kernel.models import Invoice, InvoiceItem, InvoiceStatus
from fatura_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.consistency")


class ConsistencyChecker(BaseSelector):
    """
    Read-only invariant checker.

    Guarantees:
        - Never writes; every query runs in a rolled-back read session.
        - Findings are ordered deterministically (by entity id within a
          check) so two runs over the same data compare equal.
    """

    def find_orphan_items(self, tenant_id: str) -> list[ConsistencyFinding]:
        findings: list[ConsistencyFinding] = []
        stmt = (
            select(InvoiceItem, Invoice)
            .outerjoin(Invoice, Invoice.id == InvoiceItem.invoice_id)
            .where(
                InvoiceItem.tenant_id == tenant_id,
                InvoiceItem.is_deleted.is_(False),
            )
            .order_by(InvoiceItem.id)
        )
        with self.storage.read_session() as session:
            for item, invoice in session.execute(stmt).all():
                if item.invoice_id is None:
                    findings.append(
                        self._item_finding(
                            LedgerInvariant.ITEM_HAS_INVOICE,
                            "null_invoice",
                            item,
                            "item has no invoice",
                        )
                    )
                elif invoice is None:
                    findings.append(
                        self._item_finding(
                            LedgerInvariant.ITEM_HAS_INVOICE,
                            "dangling_invoice",
                            item,
                            f"item references missing invoice {item.invoice_id}",
                        )
                    )
                elif invoice.competencia != item.competencia:
                    findings.append(
                        self._item_finding(
                            LedgerInvariant.ITEM_MATCHES_INVOICE_CYCLE,
                            "competencia_mismatch",
                            item,
                            f"item competencia {item.competencia} differs from "
                            f"invoice competencia {invoice.competencia}",
                            invoice_competencia=invoice.competencia,
                        )
                    )
        return findings

    def find_empty_open_invoices(self, tenant_id: str) -> list[ConsistencyFinding]:
        has_items = exists().where(
            and_(
                InvoiceItem.invoice_id == Invoice.id,
                InvoiceItem.is_deleted.is_(False),
            )
        )
        stmt = (
            select(Invoice)
            .where(
                Invoice.tenant_id == tenant_id,
                Invoice.status == InvoiceStatus.OPEN.value,
                ~has_items,
            )
            .order_by(Invoice.id)
        )
        with self.storage.read_session() as session:
            return [
                ConsistencyFinding(
                    invariant=None,
                    kind="empty_open_invoice",
                    entity_type="Invoice",
                    entity_id=str(invoice.id),
                    message=f"open invoice {invoice.competencia} has no items",
                    details={
                        "card_id": str(invoice.card_id),
                        "competencia": invoice.competencia,
                        "due_date": invoice.due_date.isoformat(),
                    },
                )
                for invoice in session.execute(stmt).scalars()
            ]

    def find_inconsistent_totals(self, tenant_id: str) -> list[ConsistencyFinding]:
        item_sums = (
            select(
                InvoiceItem.invoice_id.label("invoice_id"),
                func.sum(InvoiceItem.amount).label("items_total"),
            )
            .where(InvoiceItem.is_deleted.is_(False))
            .group_by(InvoiceItem.invoice_id)
            .subquery()
        )
        stmt = (
            select(Invoice, item_sums.c.items_total)
            .outerjoin(item_sums, item_sums.c.invoice_id == Invoice.id)
            .where(
                Invoice.tenant_id == tenant_id,
                Invoice.status.in_(
                    [InvoiceStatus.CLOSED.value, InvoiceStatus.PAID.value]
                ),
            )
            .order_by(Invoice.id)
        )
        findings: list[ConsistencyFinding] = []
        with self.storage.read_session() as session:
            for invoice, items_total in session.execute(stmt).all():
                actual = to_amount(items_total if items_total is not None else 0)
                recorded = (
                    to_amount(invoice.closed_total)
                    if invoice.closed_total is not None
                    else None
                )
                if recorded == actual:
                    continue
                findings.append(
                    ConsistencyFinding(
                        invariant=LedgerInvariant.CLOSED_TOTAL_MATCHES_ITEMS.value,
                        kind="total_drift",
                        entity_type="Invoice",
                        entity_id=str(invoice.id),
                        message=(
                            f"invoice {invoice.competencia} closed at {recorded} "
                            f"but items sum to {actual}"
                        ),
                        details={
                            "status": str(invoice.status),
                            "closed_total": str(recorded),
                            "items_total": str(actual),
                        },
                    )
                )
        return findings

    def find_duplicate_accrual(self, tenant_id: str) -> list[ConsistencyFinding]:
        key_columns = (
            InvoiceItem.card_id,
            InvoiceItem.competencia,
            InvoiceItem.description,
            InvoiceItem.amount,
            InvoiceItem.purchase_date,
        )
        groups = (
            select(*key_columns, func.count(InvoiceItem.id).label("copies"))
            .where(
                InvoiceItem.tenant_id == tenant_id,
                InvoiceItem.is_deleted.is_(False),
            )
            .group_by(*key_columns)
            .having(func.count(InvoiceItem.id) > 1)
        )
        findings: list[ConsistencyFinding] = []
        with self.storage.read_session() as session:
            for card_id, competencia, description, amount, purchase_date, copies in (
                session.execute(groups).all()
            ):
                item_ids = session.execute(
                    select(InvoiceItem.id)
                    .where(
                        InvoiceItem.tenant_id == tenant_id,
                        InvoiceItem.is_deleted.is_(False),
                        InvoiceItem.card_id == card_id,
                        InvoiceItem.competencia == competencia,
                        InvoiceItem.description == description,
                        InvoiceItem.amount == amount,
                        InvoiceItem.purchase_date == purchase_date,
                    )
                    .order_by(InvoiceItem.id)
                ).scalars().all()
                ids = [str(i) for i in item_ids]
                findings.append(
                    ConsistencyFinding(
                        invariant=None,
                        kind="duplicate_accrual",
                        entity_type="InvoiceItem",
                        entity_id=ids[0],
                        message=(
                            f"{copies} identical items '{description}' "
                            f"{to_amount(amount)} on {purchase_date}"
                        ),
                        details={
                            "card_id": str(card_id),
                            "competencia": competencia,
                            "item_ids": ids,
                        },
                    )
                )
        findings.sort(key=lambda f: f.entity_id)
        return findings

    def run_all(self, tenant_id: str) -> ConsistencyReport:
        report = ConsistencyReport(
            tenant_id=tenant_id,
            generated_at=self._clock.now(),
            orphan_items=tuple(self.find_orphan_items(tenant_id)),
            empty_open_invoices=tuple(self.find_empty_open_invoices(tenant_id)),
            inconsistent_totals=tuple(self.find_inconsistent_totals(tenant_id)),
            duplicate_accruals=tuple(self.find_duplicate_accrual(tenant_id)),
        )
        log = logger.warning if report.has_violations else logger.info
        log(
            "consistency_check_completed",
            extra={
                "tenant_id": tenant_id,
                "orphan_items": len(report.orphan_items),
                "empty_open_invoices": len(report.empty_open_invoices),
                "inconsistent_totals": len(report.inconsistent_totals),
                "duplicate_accruals": len(report.duplicate_accruals),
            },
        )
        return report

    @staticmethod
    def _item_finding(
        invariant: LedgerInvariant,
        kind: str,
        item: InvoiceItem,
        message: str,
        **details: str,
    ) -> ConsistencyFinding:
        return ConsistencyFinding(
            invariant=invariant.value,
            kind=kind,
            entity_type="InvoiceItem",
            entity_id=str(item.id),
            message=message,
            details={
                "card_id": str(item.card_id),
                "competencia": item.competencia,
                "invoice_id": str(item.invoice_id) if item.invoice_id else None,
                **details,
            },
        )
