"""
Recurring Invoice Scheduler - Background tasks for invoice regeneration

This module handles:
1. Periodic scans of recurring invoice templates
2. Issuing a new pending invoice (due in 7 days) once per elapsed interval
3. Rendering the PDF and emailing it to the client
4. Status updates (pending/unpaid -> overdue) for past-due invoices

Due-ness is measured from the template's last_generated_at (falling back to
created_at), so each template fires at most once per interval.

Run as a background task using APScheduler.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from dateutil.relativedelta import relativedelta
from sqlalchemy import select, update
from sqlalchemy.orm import selectinload

from config import settings
from database import async_session_maker
from email_service import EmailService
from exceptions import InvoiceAppError
from invoice_service import InvoiceService
from models import Invoice, InvoiceStatus, RecurrenceInterval
from pdf_service import InvoicePDFGenerator

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

RECURRING_EMAIL_SUBJECT = "Your Recurring Invoice"
RECURRING_EMAIL_BODY = "Please find your new recurring invoice attached."


@dataclass
class RecurringRunReport:
    checked: int = 0
    generated: List[int] = field(default_factory=list)  # New invoice ids
    failed: List[int] = field(default_factory=list)  # Template ids with a render/send failure
    skipped: bool = False


def add_interval(base: datetime, interval: RecurrenceInterval) -> datetime:
    if interval == RecurrenceInterval.WEEKLY:
        return base + timedelta(days=7)
    elif interval == RecurrenceInterval.MONTHLY:
        return base + relativedelta(months=1)
    elif interval == RecurrenceInterval.YEARLY:
        return base + relativedelta(years=1)
    raise ValueError(f"Unknown recurrence interval: {interval}")


def next_due_date(template: Invoice) -> Optional[datetime]:
    """When the template should next issue an invoice, or None without an interval"""
    if template.recurrence_interval is None:
        return None
    return add_interval(template.last_generated_at or template.created_at, template.recurrence_interval)


async def generate_recurring_invoices(
    session_factory=async_session_maker,
    pdf_generator: InvoicePDFGenerator = None,
    email_service: EmailService = None,
    now: datetime = None
) -> RecurringRunReport:
    """
    Issue new invoices for every due recurring template.
    A failure on one template is logged and the scan continues.
    """
    now = now or datetime.utcnow()
    pdf_generator = pdf_generator or InvoicePDFGenerator()
    email_service = email_service or EmailService()
    report = RecurringRunReport()

    logger.info("🔍 Starting recurring invoice check...")

    async with session_factory() as db:
        result = await db.execute(
            select(Invoice)
            .where(
                Invoice.is_recurring == True,
                Invoice.recurring_source_id.is_(None)
            )
            .order_by(Invoice.id)
        )
        templates = result.scalars().all()
        report.checked = len(templates)
        due_template_ids = [
            t.id for t in templates
            if next_due_date(t) is not None and now >= next_due_date(t)
        ]

    logger.info(f"📊 Found {report.checked} recurring template(s), {len(due_template_ids)} due")

    # Each template gets its own session so a failure cannot disturb the others
    for template_id in due_template_ids:
        async with session_factory() as db:
            service = InvoiceService(db, pdf_generator=pdf_generator, email_service=email_service)

            try:
                result = await db.execute(
                    select(Invoice)
                    .options(selectinload(Invoice.company))
                    .where(Invoice.id == template_id)
                )
                template = result.scalar_one()
                instance = await service.issue_recurring_instance(template, now)
            except Exception as e:
                logger.error(f"❌ Failed to issue invoice from template {template_id}: {str(e)}", exc_info=True)
                report.failed.append(template_id)
                continue

            report.generated.append(instance.id)

            try:
                rendered = await service.render_and_store(instance, template.company)
                if instance.client_email:
                    await email_service.send_invoice_email(
                        recipient_email=instance.client_email,
                        subject=RECURRING_EMAIL_SUBJECT,
                        body_text=RECURRING_EMAIL_BODY,
                        artifact_url=rendered.url,
                        pdf_bytes=rendered.pdf_bytes,
                        filename=f"invoice-{instance.id}.pdf",
                        company_name=template.company.name
                    )
                    logger.info(f"📬 Recurring invoice generated & sent: {instance.id}")
                else:
                    logger.warning(f"⏭️ Invoice {instance.id} has no client email - not sent")
            except InvoiceAppError as e:
                logger.error(f"❌ Invoice {instance.id} from template {template_id} issued but not delivered: {e.message}")
                report.failed.append(template_id)
            except Exception as e:
                logger.error(
                    f"❌ Unexpected error delivering invoice {instance.id} from template {template_id}: {str(e)}",
                    exc_info=True
                )
                report.failed.append(template_id)

    logger.info(
        f"✅ Recurring invoice check completed - {len(report.generated)} generated, {len(report.failed)} failed"
    )
    return report


async def mark_overdue_invoices(session_factory=async_session_maker, now: datetime = None) -> int:
    """Move pending/unpaid invoices past their due date to overdue"""
    now = now or datetime.utcnow()

    async with session_factory() as db:
        result = await db.execute(
            update(Invoice)
            .where(
                Invoice.status.in_([InvoiceStatus.PENDING, InvoiceStatus.UNPAID]),
                Invoice.due_date < now
            )
            .values(status=InvoiceStatus.OVERDUE, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await db.commit()

    count = result.rowcount or 0
    if count:
        logger.info(f"⏰ Marked {count} invoice(s) overdue")
    return count


class RecurringInvoiceRunner:
    """
    Serialises scheduler runs: a run requested while another is still in
    progress is skipped, never executed concurrently.
    """

    def __init__(
        self,
        session_factory=async_session_maker,
        pdf_generator: InvoicePDFGenerator = None,
        email_service: EmailService = None
    ):
        self.session_factory = session_factory
        self.pdf_generator = pdf_generator
        self.email_service = email_service
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    async def run(self, now: datetime = None) -> RecurringRunReport:
        if self._lock.locked():
            logger.warning("⏭️ Recurring invoice run already in progress - skipping this trigger")
            return RecurringRunReport(skipped=True)

        async with self._lock:
            logger.info("=" * 60)
            logger.info("🚀 Starting recurring invoice maintenance...")
            logger.info("=" * 60)

            try:
                report = await generate_recurring_invoices(
                    session_factory=self.session_factory,
                    pdf_generator=self.pdf_generator,
                    email_service=self.email_service,
                    now=now
                )
            finally:
                # Overdue marking runs even when generation blew up
                try:
                    await mark_overdue_invoices(self.session_factory, now=now)
                except Exception as e:
                    logger.error(f"❌ Failed to mark overdue invoices: {str(e)}", exc_info=True)

            logger.info("✅ Recurring invoice maintenance completed successfully")
            return report


async def run_recurring_invoice_checks(runner: RecurringInvoiceRunner = None):
    """Main entry point for the scheduled job"""
    runner = runner or default_runner
    try:
        await runner.run()
    except Exception as e:
        logger.error(f"❌ Fatal error in recurring invoice maintenance: {str(e)}", exc_info=True)


default_runner = RecurringInvoiceRunner()


# ============================================================================
# Scheduler Setup (APScheduler)
# ============================================================================

def start_recurring_invoice_scheduler():
    """
    Start the APScheduler background scheduler for recurring invoices.
    Runs every RECURRING_INVOICE_CHECK_HOURS hours (daily by default).
    """
    from apscheduler.schedulers.asyncio import AsyncIOScheduler
    from apscheduler.triggers.interval import IntervalTrigger

    scheduler = AsyncIOScheduler()

    scheduler.add_job(
        run_recurring_invoice_checks,
        IntervalTrigger(hours=settings.RECURRING_INVOICE_CHECK_HOURS),
        id='recurring_invoice_generation',
        name='Recurring Invoice Generation',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    scheduler.start()
    logger.info(
        f"📅 Recurring invoice scheduler started - checks every {settings.RECURRING_INVOICE_CHECK_HOURS} hours"
    )

    return scheduler


# ============================================================================
# Manual Testing / CLI Execution
# ============================================================================

if __name__ == "__main__":
    # Run checks immediately for testing
    asyncio.run(run_recurring_invoice_checks())
