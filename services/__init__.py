"""
Service Layer Architecture

This package contains the business logic behind the trip and billing
endpoints. Services provide:

1. **Transaction Management**: Atomic operations with proper rollback
2. **Business Logic Separation**: Clean separation of concerns from route handlers
3. **Testability**: Easy to unit test business logic independently
4. **Error Handling**: Structured results instead of exceptions for expected failures

Services Architecture:
- **TripService**: Trip create/update, status transitions, stops, POD, request conversion
- **TripValidator**: Field rules and vehicle/driver availability
- **JobStatusSynchronizer**: Trip stop progress carried over to jobs
- **InvoiceService**: Invoice generation, line edits, billing statuses
- **FileService**: Proof-of-delivery document storage
- **AuditService**: Centralized audit logging
"""

from .results import ServiceResult
from .trip_service import TripService
from .trip_validator import TripValidator
from .job_sync_service import JobStatusSynchronizer
from .invoice_service import InvoiceService
from .file_service import FileService
from .audit_service import AuditService
from .transaction_helper import TransactionHelper

__all__ = [
    'ServiceResult',
    'TripService',
    'TripValidator',
    'JobStatusSynchronizer',
    'InvoiceService',
    'FileService',
    'AuditService',
    'TransactionHelper'
]
