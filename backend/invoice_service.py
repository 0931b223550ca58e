"""
Invoice Lifecycle Manager

Creation with plan quota enforcement, ownership-scoped reads and edits,
PDF (re)generation and email delivery. All lookups are scoped to the
requesting user; anything owned by someone else is reported as not found.

Known limitation: update_invoice never re-runs the quota check and never
re-renders the PDF. Call regenerate_pdf after editing.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from email_service import EmailService
from exceptions import NotFound, QuotaExceeded, InvalidPayload, DeliveryFailed, RenderFailed
from models import Invoice, InvoiceStatus, Company, Client, User
from pdf_service import InvoicePDFGenerator, RenderedInvoice, build_pdf_data, calculate_invoice_totals
from plan_policy import (
    get_authoritative_subscription, get_plan_policy, count_invoices_in_window, plan_limits_from_settings
)
from schemas import InvoiceCreate, InvoiceUpdate

logger = logging.getLogger(__name__)

TOTAL_TOLERANCE = 0.01


@dataclass
class InvoiceCreateResult:
    invoice: Invoice
    warnings: List[str] = field(default_factory=list)

    @property
    def warning(self) -> Optional[str]:
        return " ".join(self.warnings) if self.warnings else None


def compute_stored_total(items: list, tax_percent: float) -> float:
    return round(calculate_invoice_totals(items, tax_percent).grand_total, 2)


class InvoiceService:
    """Orchestrates invoice persistence, plan enforcement, PDFs and email"""

    def __init__(
        self,
        db: AsyncSession,
        pdf_generator: InvoicePDFGenerator = None,
        email_service: EmailService = None,
        plan_limits: dict = None
    ):
        self.db = db
        self.pdf_generator = pdf_generator or InvoicePDFGenerator()
        self.email_service = email_service or EmailService()
        self.plan_limits = plan_limits if plan_limits is not None else plan_limits_from_settings()

    # ------------------------------------------------------------------
    # Ownership-scoped lookups
    # ------------------------------------------------------------------

    async def get_invoice(self, invoice_id: int, user_id: int) -> Invoice:
        result = await self.db.execute(
            select(Invoice).where(Invoice.id == invoice_id, Invoice.user_id == user_id)
        )
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise NotFound("Invoice not found")
        return invoice

    async def get_company(self, company_id: int, user_id: int) -> Company:
        result = await self.db.execute(
            select(Company).where(Company.id == company_id, Company.user_id == user_id)
        )
        company = result.scalar_one_or_none()
        if not company:
            raise NotFound("Company not found")
        return company

    async def get_client(self, client_id: int, user_id: int) -> Client:
        result = await self.db.execute(
            select(Client).where(Client.id == client_id, Client.user_id == user_id)
        )
        client = result.scalar_one_or_none()
        if not client:
            raise NotFound("Client not found")
        return client

    async def list_invoices(self, user_id: int, status: Optional[InvoiceStatus] = None) -> List[Invoice]:
        query = select(Invoice).where(Invoice.user_id == user_id)
        if status is not None:
            query = query.where(Invoice.status == status)

        result = await self.db.execute(query.order_by(Invoice.created_at.desc(), Invoice.id.desc()))
        return list(result.scalars().all())

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    async def create_invoice(self, user_id: int, data: InvoiceCreate, now: datetime = None) -> InvoiceCreateResult:
        """
        Create an invoice for a user and render its PDF.

        The quota count and the insert share one transaction that holds a row
        lock on the owning user, so concurrent creations for the same user
        are serialised (PostgreSQL; SQLite serialises writers anyway).

        Raises:
            NotFound: Unknown user, or company/client not owned by the user
            QuotaExceeded: The plan's invoice limit is used up for this window
        """
        now = now or datetime.utcnow()
        result = InvoiceCreateResult(invoice=None)

        try:
            user_result = await self.db.execute(
                select(User).where(User.id == user_id).with_for_update()
            )
            if not user_result.scalar_one_or_none():
                raise NotFound("User not found")

            subscription = await get_authoritative_subscription(self.db, user_id)
            policy = get_plan_policy(subscription, **self.plan_limits)

            if not policy.is_unlimited:
                used = await count_invoices_in_window(self.db, user_id, policy, now)
                if used >= policy.invoice_limit:
                    logger.warning(
                        f"Invoice quota reached for user {user_id}: {used}/{policy.invoice_limit} ({policy.plan_name})"
                    )
                    raise QuotaExceeded(policy.plan_name, policy.invoice_limit)

            client_name = data.client_name
            client_email = data.client_email
            if data.client_id is not None:
                client = await self.get_client(data.client_id, user_id)
                client_name = client.name
                client_email = client.email or data.client_email

            company = await self.get_company(data.company_id, user_id)

            items = [item.model_dump() for item in data.items]
            total = compute_stored_total(items, data.tax)
            if data.total is not None and abs(data.total - total) > TOTAL_TOLERANCE:
                logger.warning(f"Supplied total {data.total} does not match computed {total} for user {user_id}")
                result.warnings.append(f"Supplied total {data.total:.2f} was replaced by the computed total {total:.2f}.")

            invoice = Invoice(
                user_id=user_id,
                company_id=company.id,
                client_id=data.client_id,
                client_name=client_name,
                client_email=client_email,
                items=items,
                tax=data.tax,
                total=total,
                due_date=data.due_date,
                status=InvoiceStatus.PENDING,
                is_recurring=data.is_recurring,
                recurrence_interval=data.recurrence_interval if data.is_recurring else None,
                payment_details=data.payment_details,
                created_at=now
            )
            self.db.add(invoice)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(invoice)
        result.invoice = invoice
        logger.info(f"Created invoice {invoice.id} for user {user_id} ({policy.plan_name} plan)")

        # The invoice is committed; a PDF failure only degrades the response
        try:
            await self.render_and_store(invoice, company)
        except RenderFailed as e:
            logger.warning(f"Invoice {invoice.id} created without PDF: {e.message}")
            result.warnings.append("Invoice created but the PDF could not be generated. Regenerate it later.")

        return result

    async def issue_recurring_instance(self, template: Invoice, now: datetime, due_days: int = None) -> Invoice:
        """
        Copy a recurring template into a new pending invoice and stamp the template.

        The new row and template.last_generated_at are committed together, so a
        template yields at most one invoice per elapsed interval. Scheduler-issued
        invoices are not counted against the plan quota at issue time.
        """
        due_days = due_days if due_days is not None else settings.RECURRING_INVOICE_DUE_DAYS
        items = list(template.items or [])

        instance = Invoice(
            user_id=template.user_id,
            company_id=template.company_id,
            client_id=template.client_id,
            client_name=template.client_name,
            client_email=template.client_email,
            items=items,
            tax=template.tax,
            total=compute_stored_total(items, template.tax),
            due_date=now + timedelta(days=due_days),
            status=InvoiceStatus.PENDING,
            is_recurring=False,
            recurring_source_id=template.id,
            payment_details=template.payment_details,
            created_at=now
        )
        template.last_generated_at = now

        try:
            self.db.add(instance)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        await self.db.refresh(instance)
        logger.info(f"Issued invoice {instance.id} from recurring template {template.id}")
        return instance

    # ------------------------------------------------------------------
    # Update / delete
    # ------------------------------------------------------------------

    async def update_invoice(self, invoice_id: int, user_id: int, data: InvoiceUpdate) -> Invoice:
        invoice = await self.get_invoice(invoice_id, user_id)
        changes = data.model_dump(exclude_unset=True)

        if changes.get("company_id") is not None:
            await self.get_company(changes["company_id"], user_id)

        if "client_id" in changes and changes["client_id"] is not None:
            client = await self.get_client(changes["client_id"], user_id)
            changes.setdefault("client_name", client.name)
            changes.setdefault("client_email", client.email)

        if "items" in changes and changes["items"] is not None:
            changes["items"] = [dict(item) for item in changes["items"]]

        for key, value in changes.items():
            if value is None and key in ("company_id", "client_name", "items", "tax", "due_date", "status", "is_recurring"):
                continue  # Required columns are not cleared
            setattr(invoice, key, value)

        if invoice.is_recurring and invoice.recurrence_interval is None:
            await self.db.rollback()
            raise InvalidPayload("recurrence_interval is required for recurring invoices")

        # A generated instance made recurring becomes a template of its own
        if invoice.is_recurring and invoice.recurring_source_id is not None:
            invoice.recurring_source_id = None

        if "items" in changes or "tax" in changes:
            invoice.total = compute_stored_total(invoice.items, invoice.tax)

        await self.db.commit()
        await self.db.refresh(invoice)
        logger.info(f"Updated invoice {invoice.id} fields: {', '.join(sorted(changes))}")
        return invoice

    async def delete_invoice(self, invoice_id: int, user_id: int) -> None:
        invoice = await self.get_invoice(invoice_id, user_id)
        await self.db.delete(invoice)
        await self.db.commit()
        logger.info(f"Deleted invoice {invoice_id} for user {user_id}")

    # ------------------------------------------------------------------
    # PDF and email
    # ------------------------------------------------------------------

    async def render_and_store(self, invoice: Invoice, company: Company) -> RenderedInvoice:
        """Render the invoice PDF and save its address on the invoice"""
        rendered = await self.pdf_generator.render(invoice.id, build_pdf_data(invoice, company))
        invoice.pdf_url = rendered.url
        await self.db.commit()
        return rendered

    async def regenerate_pdf(self, invoice_id: int, user_id: int) -> str:
        invoice = await self.get_invoice(invoice_id, user_id)
        company = await self.get_company(invoice.company_id, user_id)

        rendered = await self.render_and_store(invoice, company)
        return rendered.url

    async def send_invoice(
        self,
        invoice_id: int,
        user_id: int,
        subject: str = None,
        message: str = None
    ) -> Invoice:
        """
        Email the invoice to its client with a freshly rendered PDF.

        Raises:
            NotFound: Invoice or company missing or owned by another user
            RenderFailed: PDF could not be produced
            DeliveryFailed: Email could not be delivered
        """
        invoice = await self.get_invoice(invoice_id, user_id)
        company = await self.get_company(invoice.company_id, user_id)

        if not invoice.client_email:
            raise DeliveryFailed(f"Invoice {invoice.id} has no client email")

        rendered = await self.render_and_store(invoice, company)
        await self.email_service.send_invoice_email(
            recipient_email=invoice.client_email,
            subject=subject or "Your Invoice",
            body_text=message or "Please find attached invoice",
            artifact_url=rendered.url,
            pdf_bytes=rendered.pdf_bytes,
            filename=f"invoice-{invoice.id}.pdf",
            company_name=company.name
        )
        return invoice
