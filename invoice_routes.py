"""
Invoice API Module
Web endpoints for generating, editing and progressing trip invoices
"""

from flask import Blueprint, request
import logging

from services import InvoiceService
from utils.api_responses import service_response, error_response, register_error_handlers

logger = logging.getLogger(__name__)

invoice_bp = Blueprint('invoice_api', __name__)
register_error_handlers(invoice_bp)

invoice_service = InvoiceService()


def _invoice_dict(invoice):
    return invoice.to_dict()


@invoice_bp.route('/invoices/generate/<int:trip_id>', methods=['POST'])
def generate_invoice(trip_id):
    """Generate the draft invoice for a completed trip"""
    result = invoice_service.generate_for_trip(trip_id)
    return service_response(result, _invoice_dict, success_code=201)


@invoice_bp.route('/invoices/trip/<int:trip_id>', methods=['GET'])
def get_invoice_by_trip(trip_id):
    return service_response(invoice_service.get_by_trip(trip_id), _invoice_dict)


@invoice_bp.route('/invoices', methods=['GET'])
def list_invoices():
    result = invoice_service.list_invoices(status=request.args.get('status'))
    return service_response(result, _invoice_dict)


@invoice_bp.route('/invoices/<int:invoice_id>', methods=['PUT'])
def update_invoice(invoice_id):
    """Body: {"lines": [{"description", "amount", "tax_amount"}], "status": optional}"""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return error_response("Request body must be a JSON object", 400)
    return service_response(invoice_service.update_invoice(invoice_id, payload), _invoice_dict)


@invoice_bp.route('/invoices/<int:invoice_id>/status', methods=['PUT', 'POST'])
def update_invoice_status(invoice_id):
    """Body: {"status": "Approved"}"""
    payload = request.get_json(silent=True) or {}
    result = invoice_service.update_status(invoice_id, payload.get('status'))
    return service_response(result, _invoice_dict)
