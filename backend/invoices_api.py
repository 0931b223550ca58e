"""
Invoice API Endpoints
Create, list, edit, delete, render and email invoices
"""

from fastapi import APIRouter, Depends, status
from typing import List, Optional
import logging

from auth import get_current_active_user
from dependencies import get_invoice_service
from invoice_service import InvoiceService
from models import User, InvoiceStatus
from schemas import (
    InvoiceCreate,
    InvoiceUpdate,
    InvoiceResponse,
    InvoiceCreateResponse,
    InvoicePdfResponse,
    InvoiceSendRequest,
    MessageResponse
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/invoices", tags=["invoices"])


@router.post("", response_model=InvoiceCreateResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    invoice_data: InvoiceCreate,
    current_user: User = Depends(get_current_active_user),
    service: InvoiceService = Depends(get_invoice_service)
):
    """
    Create an invoice within the user's plan quota.
    A PDF failure does not fail the request; it is reported in `warning`.
    """
    result = await service.create_invoice(current_user.id, invoice_data)
    return InvoiceCreateResponse(
        invoice=InvoiceResponse.model_validate(result.invoice),
        warning=result.warning
    )


@router.get("", response_model=List[InvoiceResponse])
async def list_invoices(
    status: Optional[InvoiceStatus] = None,
    current_user: User = Depends(get_current_active_user),
    service: InvoiceService = Depends(get_invoice_service)
):
    return await service.list_invoices(current_user.id, status=status)


@router.get("/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int,
    current_user: User = Depends(get_current_active_user),
    service: InvoiceService = Depends(get_invoice_service)
):
    return await service.get_invoice(invoice_id, current_user.id)


@router.put("/{invoice_id}", response_model=InvoiceResponse)
async def update_invoice(
    invoice_id: int,
    invoice_data: InvoiceUpdate,
    current_user: User = Depends(get_current_active_user),
    service: InvoiceService = Depends(get_invoice_service)
):
    """Update invoice fields. The stored PDF is not re-rendered; call /pdf afterwards."""
    return await service.update_invoice(invoice_id, current_user.id, invoice_data)


@router.delete("/{invoice_id}", response_model=MessageResponse)
async def delete_invoice(
    invoice_id: int,
    current_user: User = Depends(get_current_active_user),
    service: InvoiceService = Depends(get_invoice_service)
):
    await service.delete_invoice(invoice_id, current_user.id)
    return MessageResponse(message="Invoice deleted")


@router.get("/{invoice_id}/pdf", response_model=InvoicePdfResponse)
async def regenerate_invoice_pdf(
    invoice_id: int,
    current_user: User = Depends(get_current_active_user),
    service: InvoiceService = Depends(get_invoice_service)
):
    """Render the invoice again and return its PDF URL"""
    pdf_url = await service.regenerate_pdf(invoice_id, current_user.id)
    return InvoicePdfResponse(pdf_url=pdf_url)


@router.post("/{invoice_id}/send", response_model=MessageResponse)
async def send_invoice(
    invoice_id: int,
    send_request: Optional[InvoiceSendRequest] = None,
    current_user: User = Depends(get_current_active_user),
    service: InvoiceService = Depends(get_invoice_service)
):
    """Email a freshly rendered PDF to the invoice's client"""
    send_request = send_request or InvoiceSendRequest()
    await service.send_invoice(
        invoice_id,
        current_user.id,
        subject=send_request.subject,
        message=send_request.message
    )
    return MessageResponse(message="Invoice sent successfully")
