"""
Unit tests for invoice generation and editing
"""

import pytest
from datetime import datetime
from unittest.mock import patch

from models import Invoice, InvoiceLine, InvoiceStatus, TripStatus
from services.invoice_service import InvoiceService
from services.results import VALIDATION_ERROR, NOT_FOUND, STATE_ERROR
from tests.factories import TripFactory, TripPackageFactory, VehicleFactory


def completed_trip(**kwargs):
    kwargs.setdefault('status', TripStatus.COMPLETED)
    return TripFactory(**kwargs)


class TestGenerateInvoice:
    """Test InvoiceService.generate_for_trip"""

    def test_24ft_trip(self, db_session, frozen_now):
        trip = completed_trip(truck_type='24FT')

        success, errors, invoice, kind = InvoiceService().generate_for_trip(trip.id)

        assert success is True
        assert invoice.status == InvoiceStatus.DRAFT
        assert invoice.invoice_number == 'INV-202405-0001'
        assert invoice.invoice_date == frozen_now
        assert invoice.currency == 'SGD'
        assert [(line.amount, line.tax_amount) for line in invoice.lines] == [(150.0, 13.5)]
        assert invoice.total_amount == 150.0
        assert invoice.total_tax == 13.5

    def test_14ft_trip_with_pallets(self, db_session, frozen_now):
        vehicle = VehicleFactory(registration_number='GBA1234K')
        trip = completed_trip(truck_type='14FT', vehicle=vehicle)
        TripPackageFactory(trip_id=trip.id, package_type='Pallets', quantity=4, pallet_count=4)

        invoice = InvoiceService().generate_for_trip(trip.id).data

        assert [(line.description, line.amount, line.tax_amount) for line in invoice.lines] == [
            ('Transport Charges - 14FT - GBA1234K', 80.0, 7.2),
            ('Pallet Surcharge (4 × $15)', 60.0, 5.4),
        ]
        assert invoice.total_amount == 140.0
        assert invoice.total_tax == 12.6

    def test_helper_and_pod(self, db_session, frozen_now):
        trip = completed_trip(helper_name='Ahmad', proof_of_delivery_required=True)

        invoice = InvoiceService().generate_for_trip(trip.id).data

        assert [line.description for line in invoice.lines][1:] == ['Helper Service', 'POD Handling Fee']
        assert invoice.total_amount == 130.0

    def test_generation_is_idempotent(self, db_session, frozen_now):
        trip = completed_trip()
        service = InvoiceService()
        first = service.generate_for_trip(trip.id)

        second = service.generate_for_trip(trip.id)

        assert second.success is False
        assert second.kind == STATE_ERROR
        assert second.errors == ["Invoice already exists for this trip"]
        assert second.data.id == first.data.id
        assert Invoice.query.filter_by(trip_id=trip.id).count() == 1

    def test_unknown_trip(self, db_session):
        result = InvoiceService().generate_for_trip(404)
        assert result.kind == NOT_FOUND
        assert result.errors == ["Trip not found"]

    def test_requires_completed_trip(self, db_session):
        trip = TripFactory(status=TripStatus.IN_TRANSIT)

        result = InvoiceService().generate_for_trip(trip.id)

        assert result.kind == STATE_ERROR
        assert Invoice.query.count() == 0

    def test_completed_requirement_can_be_disabled(self, app, db_session, frozen_now):
        app.config['BILLING_REQUIRE_COMPLETED_TRIP'] = False
        trip = TripFactory(status=TripStatus.ASSIGNED)

        assert InvoiceService().generate_for_trip(trip.id).success is True

    def test_invoice_numbers_increase_within_month(self, db_session, frozen_now):
        service = InvoiceService()
        numbers = [service.generate_for_trip(completed_trip().id).data.invoice_number for _ in range(3)]

        assert numbers == ['INV-202405-0001', 'INV-202405-0002', 'INV-202405-0003']

    def test_configured_tariff_used(self, app, db_session, frozen_now):
        app.config['BILLING_BASE_RATE_DEFAULT'] = 100
        app.config['BILLING_CURRENCY'] = 'MYR'
        trip = completed_trip()

        invoice = InvoiceService().generate_for_trip(trip.id).data

        assert invoice.total_amount == 100.0
        assert invoice.total_tax == 9.0
        assert invoice.currency == 'MYR'


class TestUpdateInvoice:
    """Test InvoiceService.update_invoice"""

    @pytest.fixture
    def invoice(self, db_session, frozen_now):
        trip = completed_trip(truck_type='24FT', helper_name='Ahmad')
        return InvoiceService().generate_for_trip(trip.id).data

    def test_lines_replaced_and_totals_recomputed(self, db_session, invoice):
        result = InvoiceService().update_invoice(invoice.id, {
            'total_amount': 9999,
            'lines': [
                {'description': 'Transport Charges', 'amount': 120, 'tax_amount': 10.8},
                {'description': 'Waiting Time', 'amount': 25},
            ],
        })

        assert result.success is True
        assert [(l.description, l.amount, l.tax_amount) for l in result.data.lines] == [
            ('Transport Charges', 120.0, 10.8),
            ('Waiting Time', 25.0, 2.25),
        ]
        assert result.data.total_amount == 145.0
        assert result.data.total_tax == 13.05
        assert InvoiceLine.query.filter_by(invoice_id=invoice.id).count() == 2

    def test_status_applied_with_lines(self, db_session, invoice):
        result = InvoiceService().update_invoice(invoice.id, {
            'lines': [{'description': 'Transport Charges', 'amount': 150}],
            'status': 'Approved',
        })

        assert result.success is True
        assert result.data.status == InvoiceStatus.APPROVED

    def test_line_errors_collected(self, db_session, invoice):
        result = InvoiceService().update_invoice(invoice.id, {
            'lines': [{'description': '', 'amount': 10}, {'description': 'Toll', 'amount': 'abc'}],
        })

        assert result.kind == VALIDATION_ERROR
        assert result.errors == ["Line 1: Description is required", "Line 2: Amount is not valid"]
        assert len(InvoiceService().get_by_trip(invoice.trip_id).data.lines) == 2

    def test_malformed_lines_rejected(self, db_session, invoice):
        result = InvoiceService().update_invoice(invoice.id, {
            'lines': [42, 'Transport Charges', {'description': 7, 'amount': 10}],
        })

        assert result.kind == VALIDATION_ERROR
        assert result.errors == ["Line 1 is not valid", "Line 2 is not valid",
                                 "Line 3: Description is not valid"]
        assert len(InvoiceService().get_by_trip(invoice.trip_id).data.lines) == 2

    def test_only_draft_editable(self, db_session, invoice):
        InvoiceService().update_status(invoice.id, 'Approved')

        result = InvoiceService().update_invoice(invoice.id, {'lines': []})

        assert result.kind == STATE_ERROR

    def test_unknown_invoice(self, db_session):
        assert InvoiceService().update_invoice(404, {'lines': []}).kind == NOT_FOUND


class TestInvoiceStatus:
    """Test InvoiceService.update_status"""

    @pytest.fixture
    def invoice(self, db_session, frozen_now):
        return InvoiceService().generate_for_trip(completed_trip().id).data

    def test_billing_path(self, db_session, invoice):
        service = InvoiceService()
        for status in ('Accrued', 'Invoiced', 'PaymentReceived'):
            result = service.update_status(invoice.id, status)
            assert result.success is True
        assert result.data.status == InvoiceStatus.PAYMENT_RECEIVED

    def test_skipping_rejected(self, db_session, invoice):
        result = InvoiceService().update_status(invoice.id, 'PaymentReceived')

        assert result.kind == STATE_ERROR
        assert result.errors == ["Cannot change invoice status from Draft to PaymentReceived"]

    def test_cancelled_is_final(self, db_session, invoice):
        service = InvoiceService()
        service.update_status(invoice.id, 'Cancelled')

        assert service.update_status(invoice.id, 'Draft').kind == STATE_ERROR

    def test_invalid_status_name(self, db_session, invoice):
        result = InvoiceService().update_status(invoice.id, 'Void')
        assert result.errors == ["Invalid status: Void"]


class TestInvoiceQueries:
    """Lookups"""

    def test_get_by_trip(self, db_session, frozen_now):
        trip = completed_trip()
        InvoiceService().generate_for_trip(trip.id)

        result = InvoiceService().get_by_trip(trip.id)

        assert result.success is True
        assert result.data.trip_id == trip.id

    def test_get_by_trip_without_invoice(self, db_session):
        trip = completed_trip()
        assert InvoiceService().get_by_trip(trip.id).kind == NOT_FOUND

    def test_list_newest_first(self, db_session):
        service = InvoiceService()
        with patch('timezone_utils.now', return_value=datetime(2024, 4, 30, 9, 0)):
            april = service.generate_for_trip(completed_trip().id).data.invoice_number
        with patch('timezone_utils.now', return_value=datetime(2024, 5, 2, 9, 0)):
            may = service.generate_for_trip(completed_trip().id).data.invoice_number

        numbers = [invoice.invoice_number for invoice in service.list_invoices().data]

        assert (april, may) == ('INV-202404-0001', 'INV-202405-0001')
        assert numbers == [may, april]
