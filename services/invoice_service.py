"""
Invoice Service

Generates one draft invoice per trip from the configured tariff, lets
billing staff edit draft lines, and moves invoices through their billing
statuses.
"""

from typing import Optional, Dict, Any, List
import logging
from flask import current_app
import timezone_utils
from models import db, Trip, Invoice, InvoiceLine, TripStatus, InvoiceStatus, parse_status
from utils.billing import Tariff, calculate_trip_charges, summarize_lines
from .transaction_helper import TransactionHelper
from .audit_service import AuditService
from .results import ServiceResult

logger = logging.getLogger(__name__)

INVOICE_TRANSITIONS = {
    InvoiceStatus.DRAFT: {InvoiceStatus.APPROVED, InvoiceStatus.ACCRUED, InvoiceStatus.CANCELLED},
    InvoiceStatus.APPROVED: {InvoiceStatus.INVOICED, InvoiceStatus.CANCELLED},
    InvoiceStatus.ACCRUED: {InvoiceStatus.INVOICED, InvoiceStatus.CANCELLED},
    InvoiceStatus.INVOICED: {InvoiceStatus.PAYMENT_RECEIVED},
    InvoiceStatus.PAYMENT_RECEIVED: set(),
    InvoiceStatus.CANCELLED: set(),
}


class InvoiceService:
    """Service class for trip billing"""

    def __init__(self):
        self.audit_service = AuditService()

    def _tariff(self) -> Tariff:
        return Tariff.from_config(current_app.config)

    def _next_invoice_number(self, invoice_date) -> str:
        """Next INV-YYYYMM-NNNN for the month of invoice_date"""
        period = invoice_date.strftime('%Y%m')
        prefix = f"INV-{period}-"
        TransactionHelper.acquire_locks(f"invoice-number:{period}")

        existing = db.session.query(Invoice.invoice_number) \
                             .filter(Invoice.invoice_number.like(f"{prefix}%")).all()
        highest = 0
        for (number,) in existing:
            suffix = number[len(prefix):]
            if suffix.isdigit():
                highest = max(highest, int(suffix))
        return f"{prefix}{highest + 1:04d}"

    def _check_status_change(self, invoice: Invoice, target: InvoiceStatus) -> Optional[str]:
        if invoice.status == target:
            return f"Invoice is already {target.value}"
        if target not in INVOICE_TRANSITIONS[invoice.status]:
            return f"Cannot change invoice status from {invoice.status.value} to {target.value}"
        return None

    @TransactionHelper.with_transaction
    def generate_for_trip(self, trip_id: int, user_id: Optional[int] = None) -> ServiceResult:
        """
        Create the draft invoice for a trip.

        Generation is idempotent: when the trip already has an invoice the
        result is a state error carrying the existing invoice as data.

        Args:
            trip_id: ID of the trip to bill
            user_id: Acting user for the audit trail

        Returns:
            ServiceResult: (success, errors, invoice, kind)
        """
        TransactionHelper.acquire_locks(f"trip:{trip_id}")

        existing = Invoice.query.filter_by(trip_id=trip_id).first()
        if existing:
            logger.info(f"Invoice {existing.invoice_number} already exists for trip {trip_id}")
            return ServiceResult.state_error("Invoice already exists for this trip", data=existing)

        trip = db.session.get(Trip, trip_id)
        if not trip:
            return ServiceResult.not_found("Trip not found")

        if current_app.config.get('BILLING_REQUIRE_COMPLETED_TRIP', True) and trip.status != TripStatus.COMPLETED:
            return ServiceResult.state_error(
                f"Trip is {trip.status.value}; only Completed trips can be invoiced")

        tariff = self._tariff()
        charges = calculate_trip_charges(
            truck_type=trip.truck_type,
            total_pallets=trip.total_pallets,
            helper_name=trip.helper_name,
            pod_required=trip.proof_of_delivery_required,
            tariff=tariff,
            vehicle_registration=trip.vehicle.registration_number if trip.vehicle else None,
        )
        totals = summarize_lines(charges)

        invoice_date = timezone_utils.now()
        invoice = Invoice(
            trip_id=trip.id,
            invoice_number=self._next_invoice_number(invoice_date),
            invoice_date=invoice_date,
            billing_source='System',
            currency=tariff.currency,
            status=InvoiceStatus.DRAFT,
            total_amount=totals['total_amount'],
            total_tax=totals['total_tax'],
        )
        invoice.lines = [InvoiceLine(**charge) for charge in charges]
        db.session.add(invoice)
        db.session.flush()

        self.audit_service.log_action(
            action='generate_invoice',
            entity_type='invoice',
            entity_id=invoice.id,
            details={
                'trip_id': trip.id,
                'invoice_number': invoice.invoice_number,
                'total_amount': invoice.total_amount,
                'total_tax': invoice.total_tax,
            },
            user_id=user_id
        )

        logger.info(f"Invoice {invoice.invoice_number} generated for trip {trip.trip_number}: "
                    f"{invoice.total_amount} + {invoice.total_tax} tax {invoice.currency}")
        return ServiceResult.ok(invoice)

    def get_by_trip(self, trip_id: int) -> ServiceResult:
        invoice = Invoice.query.filter_by(trip_id=trip_id).first()
        if not invoice:
            return ServiceResult.not_found("Invoice not found")
        return ServiceResult.ok(invoice)

    def list_invoices(self, status: Optional[str] = None) -> ServiceResult:
        """List invoices newest first, optionally filtered by status name"""
        query = Invoice.query
        if status:
            try:
                query = query.filter(Invoice.status == parse_status(InvoiceStatus, status))
            except ValueError as e:
                return ServiceResult.invalid([str(e)])
        return ServiceResult.ok(query.order_by(Invoice.invoice_date.desc(), Invoice.id.desc()).all())

    def _parse_lines(self, raw_lines, tariff: Tariff):
        lines, errors = [], []
        for index, raw in enumerate(raw_lines, start=1):
            if not isinstance(raw, dict):
                errors.append(f"Line {index} is not valid")
                continue
            description = raw.get('description')
            if description is not None and not isinstance(description, str):
                errors.append(f"Line {index}: Description is not valid")
                continue
            description = (description or '').strip()
            if not description:
                errors.append(f"Line {index}: Description is required")
            try:
                amount = round(float(raw.get('amount')), 2)
            except (TypeError, ValueError):
                errors.append(f"Line {index}: Amount is not valid")
                continue
            tax_amount = raw.get('tax_amount')
            if tax_amount is None or tax_amount == '':
                tax_amount = tariff.tax_for(amount)
            else:
                try:
                    tax_amount = round(float(tax_amount), 2)
                except (TypeError, ValueError):
                    errors.append(f"Line {index}: Tax amount is not valid")
                    continue
            lines.append({'description': description, 'amount': amount, 'tax_amount': tax_amount})
        return lines, errors

    @TransactionHelper.with_transaction
    def update_invoice(self, invoice_id: int, payload: Dict[str, Any], user_id: Optional[int] = None) -> ServiceResult:
        """
        Replace a draft invoice's lines and recompute its totals.

        Totals supplied by the caller are ignored; they always equal the sum
        of the saved lines. An optional 'status' in the payload is applied
        after the lines, through the invoice status graph.
        """
        invoice = db.session.get(Invoice, invoice_id)
        if not invoice:
            return ServiceResult.not_found("Invoice not found")

        TransactionHelper.acquire_locks(f"trip:{invoice.trip_id}")

        if invoice.status != InvoiceStatus.DRAFT:
            return ServiceResult.state_error(
                f"Invoice is {invoice.status.value}; only Draft invoices can be edited")

        raw_lines = payload.get('lines')
        if not isinstance(raw_lines, list):
            return ServiceResult.invalid(["Lines must be a list"])

        lines, errors = self._parse_lines(raw_lines, self._tariff())
        if errors:
            return ServiceResult.invalid(errors)

        target = None
        if payload.get('status'):
            try:
                target = parse_status(InvoiceStatus, payload['status'])
            except ValueError as e:
                return ServiceResult.state_error(str(e))
            if target == invoice.status:
                target = None
            else:
                error = self._check_status_change(invoice, target)
                if error:
                    return ServiceResult.state_error(error)

        # Old lines are removed before the replacements are inserted
        invoice.lines = []
        db.session.flush()
        invoice.lines = [InvoiceLine(**line) for line in lines]

        totals = summarize_lines(lines)
        invoice.total_amount = totals['total_amount']
        invoice.total_tax = totals['total_tax']
        previous_status = invoice.status
        if target is not None:
            invoice.status = target

        self.audit_service.log_action(
            action='update_invoice',
            entity_type='invoice',
            entity_id=invoice.id,
            details={
                'line_count': len(lines),
                'total_amount': invoice.total_amount,
                'total_tax': invoice.total_tax,
                'from': previous_status.value,
                'to': invoice.status.value,
            },
            user_id=user_id
        )

        logger.info(f"Invoice {invoice.invoice_number} updated: {len(lines)} line(s)")
        return ServiceResult.ok(invoice)

    @TransactionHelper.with_transaction
    def update_status(self, invoice_id: int, status_name: str, user_id: Optional[int] = None) -> ServiceResult:
        """
        Move an invoice along Draft -> Approved/Accrued -> Invoiced -> PaymentReceived.

        Draft, Approved and Accrued invoices may also be Cancelled.
        """
        invoice = db.session.get(Invoice, invoice_id)
        if not invoice:
            return ServiceResult.not_found("Invoice not found")

        try:
            target = parse_status(InvoiceStatus, status_name)
        except ValueError as e:
            return ServiceResult.state_error(str(e))

        error = self._check_status_change(invoice, target)
        if error:
            logger.warning(f"Rejected status change for invoice {invoice.invoice_number}: {error}")
            return ServiceResult.state_error(error)

        previous = invoice.status
        invoice.status = target

        self.audit_service.log_action(
            action='update_invoice_status',
            entity_type='invoice',
            entity_id=invoice.id,
            details={'from': previous.value, 'to': target.value},
            user_id=user_id
        )

        logger.info(f"Invoice {invoice.invoice_number} status {previous.value} -> {target.value}")
        return ServiceResult.ok(invoice)
