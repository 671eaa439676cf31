import json
from app import db
from sqlalchemy import Index, CheckConstraint, UniqueConstraint
from enum import Enum
import uuid
from timezone_utils import get_local_time_naive

# Enums for better data integrity
class TripStatus(Enum):
    CREATED = 'Created'
    ASSIGNED = 'Assigned'
    PLANNED = 'Planned'
    START_TRIP = 'StartTrip'
    START_LOAD = 'StartLoad'
    COMPLETE_LOAD = 'CompleteLoad'
    IN_TRANSIT = 'InTransit'
    COMPLETED = 'Completed'
    CANCELLED = 'Cancelled'

class JobStatus(Enum):
    RECEIVED = 'Received'
    IN_TRANSIT = 'InTransit'
    DELIVERED = 'Delivered'
    CANCELLED = 'Cancelled'

class TripStopStatus(Enum):
    CREATED = 'Created'
    PICKED_UP = 'PickedUp'
    DELIVERED = 'Delivered'

class InvoiceStatus(Enum):
    DRAFT = 'Draft'
    APPROVED = 'Approved'
    ACCRUED = 'Accrued'
    INVOICED = 'Invoiced'
    PAYMENT_RECEIVED = 'PaymentReceived'
    CANCELLED = 'Cancelled'

class JobRequestStatus(Enum):
    SUBMITTED = 'Submitted'
    CONVERTED = 'Converted'
    REJECTED = 'Rejected'

# Monotonic orderings; Cancelled sits outside the job ordering
JOB_STATUS_ORDER = {
    JobStatus.RECEIVED: 0,
    JobStatus.IN_TRANSIT: 1,
    JobStatus.DELIVERED: 2,
}

TRIP_STOP_STATUS_ORDER = {
    TripStopStatus.CREATED: 0,
    TripStopStatus.PICKED_UP: 1,
    TripStopStatus.DELIVERED: 2,
}

TERMINAL_TRIP_STATUSES = (TripStatus.COMPLETED, TripStatus.CANCELLED)

PALLET_PACKAGE_TYPE = 'Pallets'


def parse_status(enum_cls, name):
    """
    Parse a status name into a member of enum_cls.

    Accepts the wire value ('InTransit') or the member name ('IN_TRANSIT'),
    case-insensitively. Unknown or empty names raise ValueError.
    """
    if isinstance(name, enum_cls):
        return name
    if not isinstance(name, str) or not name.strip():
        raise ValueError(f"Invalid status: {name}")

    wanted = name.strip().replace('_', '').replace(' ', '').lower()
    for member in enum_cls:
        if member.value.lower() == wanted or member.name.replace('_', '').lower() == wanted:
            return member
    raise ValueError(f"Invalid status: {name}")


class Vehicle(db.Model):
    __tablename__ = 'vehicles'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    registration_number = db.Column(db.String(20), unique=True, nullable=False, index=True)
    truck_type = db.Column(db.String(10))  # 14FT / 24FT
    is_active = db.Column(db.Boolean, default=True, index=True)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    def __repr__(self):
        return f'<Vehicle {self.registration_number}>'

class Driver(db.Model):
    __tablename__ = 'drivers'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    full_name = db.Column(db.String(100), nullable=False)
    phone = db.Column(db.String(20), index=True)
    is_active = db.Column(db.Boolean, default=True, index=True)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    def __repr__(self):
        return f'<Driver {self.full_name}>'

class Job(db.Model):
    __tablename__ = 'jobs'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    customer_name = db.Column(db.String(200), nullable=False, index=True)
    email_reference = db.Column(db.String(100))
    status = db.Column(db.Enum(JobStatus), nullable=False, default=JobStatus.RECEIVED, index=True)

    # Pickup details
    pickup_address = db.Column(db.String(500), nullable=False)
    requested_pickup_time = db.Column(db.DateTime)

    # Delivery details
    delivery_address = db.Column(db.String(500), nullable=False)
    requested_delivery_time = db.Column(db.DateTime)

    # Load details
    weight_kg = db.Column(db.Float, default=0.0)
    volume_cbm = db.Column(db.Float, default=0.0)
    required_vehicle_type = db.Column(db.String(100))
    special_instructions = db.Column(db.String(1000))

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    def to_dict(self):
        return {
            'id': self.id,
            'customer_name': self.customer_name,
            'status': self.status.value,
            'pickup_address': self.pickup_address,
            'delivery_address': self.delivery_address,
            'weight_kg': self.weight_kg,
            'volume_cbm': self.volume_cbm,
        }

    def __repr__(self):
        return f'<Job {self.id} {self.status.value}>'

class JobRequest(db.Model):
    __tablename__ = 'job_requests'

    id = db.Column(db.Integer, primary_key=True)
    customer_name = db.Column(db.String(200), nullable=False)
    preferred_date = db.Column(db.Date, nullable=False)
    pickup_location = db.Column(db.String(500))
    drop_location = db.Column(db.String(500))
    cargo_description = db.Column(db.String(250))
    volume = db.Column(db.Float)
    weight = db.Column(db.Float)
    request_status = db.Column(db.Enum(JobRequestStatus), nullable=False,
                               default=JobRequestStatus.SUBMITTED, index=True)
    trip_id = db.Column(db.Integer, db.ForeignKey('trips.id'))

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)
    updated_by = db.Column(db.Integer)

    def __repr__(self):
        return f'<JobRequest {self.id} {self.request_status.value}>'

class Trip(db.Model):
    __tablename__ = 'trips'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    trip_number = db.Column(db.String(20), unique=True, nullable=False, index=True)
    trip_date = db.Column(db.Date, nullable=False, index=True)
    status = db.Column(db.Enum(TripStatus), nullable=False, default=TripStatus.CREATED, index=True)

    truck_type = db.Column(db.String(10))  # 14FT / 24FT
    helper_name = db.Column(db.String(100))
    remarks = db.Column(db.String(250))
    charges_type = db.Column(db.String(20))  # Monthly / Adhoc
    number_of_trips = db.Column(db.Integer, nullable=False, default=1)
    total_cost = db.Column(db.Float, default=0.0)

    # Shared fleet resources
    vehicle_id = db.Column(db.Integer, db.ForeignKey('vehicles.id'), index=True)
    driver_id = db.Column(db.Integer, db.ForeignKey('drivers.id'), index=True)

    # Schedule
    start_time = db.Column(db.DateTime)
    end_time = db.Column(db.DateTime)
    time_window_from = db.Column(db.Time)
    time_window_to = db.Column(db.Time)

    # Proof of delivery
    proof_of_delivery_required = db.Column(db.Boolean, default=False, nullable=False)
    proof_of_delivery_url = db.Column(db.String(500))

    pickup_location = db.Column(db.String(500))
    drop_location = db.Column(db.String(500))
    job_request_id = db.Column(db.Integer)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    # Relationships
    vehicle = db.relationship('Vehicle', foreign_keys=[vehicle_id])
    driver = db.relationship('Driver', foreign_keys=[driver_id])
    packages = db.relationship('TripPackage', order_by='TripPackage.id',
                               cascade='all, delete-orphan', lazy=True)
    stops = db.relationship('TripStop', order_by='TripStop.sequence_order',
                            cascade='all, delete-orphan', lazy=True)

    __table_args__ = (
        Index('idx_trip_vehicle_window', 'vehicle_id', 'start_time', 'end_time'),
        Index('idx_trip_driver_window', 'driver_id', 'start_time', 'end_time'),
        CheckConstraint('number_of_trips >= 1', name='check_number_of_trips_positive'),
    )

    @property
    def is_terminal(self):
        return self.status in TERMINAL_TRIP_STATUSES

    @property
    def total_pallets(self):
        return sum(p.pallet_count or 0 for p in self.packages
                   if p.package_type == PALLET_PACKAGE_TYPE)

    def to_dict(self):
        return {
            'id': self.id,
            'trip_number': self.trip_number,
            'trip_date': self.trip_date.isoformat() if self.trip_date else None,
            'status': self.status.value,
            'truck_type': self.truck_type,
            'vehicle_id': self.vehicle_id,
            'driver_id': self.driver_id,
            'start_time': self.start_time.isoformat() if self.start_time else None,
            'end_time': self.end_time.isoformat() if self.end_time else None,
            'time_window_from': self.time_window_from.strftime('%H:%M') if self.time_window_from else None,
            'time_window_to': self.time_window_to.strftime('%H:%M') if self.time_window_to else None,
            'number_of_trips': self.number_of_trips,
            'helper_name': self.helper_name,
            'remarks': self.remarks,
            'charges_type': self.charges_type,
            'total_cost': self.total_cost,
            'proof_of_delivery_required': self.proof_of_delivery_required,
            'proof_of_delivery_url': self.proof_of_delivery_url,
            'pickup_location': self.pickup_location,
            'drop_location': self.drop_location,
            'job_request_id': self.job_request_id,
            'packages': [p.to_dict() for p in self.packages],
            'stops': [s.to_dict() for s in self.stops],
        }

    def __repr__(self):
        return f'<Trip {self.trip_number} {self.status.value}>'

class TripPackage(db.Model):
    __tablename__ = 'trip_packages'

    id = db.Column(db.Integer, primary_key=True)
    trip_id = db.Column(db.Integer, db.ForeignKey('trips.id'), nullable=False, index=True)
    package_type = db.Column(db.String(50), nullable=False)  # Pallets, Box, Crate
    quantity = db.Column(db.Integer, nullable=False)
    volume = db.Column(db.Float)  # m3
    pallet_count = db.Column(db.Integer)

    def to_dict(self):
        return {
            'id': self.id,
            'package_type': self.package_type,
            'quantity': self.quantity,
            'volume': self.volume,
            'pallet_count': self.pallet_count,
        }

class TripStop(db.Model):
    __tablename__ = 'trip_stops'

    id = db.Column(db.Integer, primary_key=True)
    trip_id = db.Column(db.Integer, db.ForeignKey('trips.id'), nullable=False, index=True)
    job_id = db.Column(db.Integer, db.ForeignKey('jobs.id'), nullable=False, index=True)
    sequence_order = db.Column(db.Integer, nullable=False)
    status = db.Column(db.Enum(TripStopStatus), nullable=False, default=TripStopStatus.CREATED)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    job = db.relationship('Job', foreign_keys=[job_id])

    __table_args__ = (
        UniqueConstraint('trip_id', 'sequence_order', name='uq_trip_stop_sequence'),
    )

    def to_dict(self):
        return {
            'id': self.id,
            'trip_id': self.trip_id,
            'job_id': self.job_id,
            'sequence_order': self.sequence_order,
            'status': self.status.value,
            'job_status': self.job.status.value if self.job else None,
        }

class Invoice(db.Model):
    __tablename__ = 'invoices'

    id = db.Column(db.Integer, primary_key=True)
    uuid = db.Column(db.String(36), unique=True, nullable=False, default=lambda: str(uuid.uuid4()))
    invoice_number = db.Column(db.String(50), unique=True, nullable=False, index=True)
    invoice_date = db.Column(db.DateTime, nullable=False)
    trip_id = db.Column(db.Integer, db.ForeignKey('trips.id'), unique=True, nullable=False)

    billing_source = db.Column(db.String(20), default='System')
    currency = db.Column(db.String(3), default='SGD')
    total_amount = db.Column(db.Float, nullable=False, default=0.0)
    total_tax = db.Column(db.Float, nullable=False, default=0.0)
    status = db.Column(db.Enum(InvoiceStatus), nullable=False, default=InvoiceStatus.DRAFT, index=True)

    created_at = db.Column(db.DateTime, default=get_local_time_naive)
    updated_at = db.Column(db.DateTime, default=get_local_time_naive, onupdate=get_local_time_naive)

    lines = db.relationship('InvoiceLine', order_by='InvoiceLine.id',
                            cascade='all, delete-orphan', lazy=True)

    @property
    def grand_total(self):
        return round((self.total_amount or 0) + (self.total_tax or 0), 2)

    def to_dict(self):
        return {
            'id': self.id,
            'invoice_number': self.invoice_number,
            'invoice_date': self.invoice_date.isoformat() if self.invoice_date else None,
            'trip_id': self.trip_id,
            'billing_source': self.billing_source,
            'currency': self.currency,
            'total_amount': self.total_amount,
            'total_tax': self.total_tax,
            'grand_total': self.grand_total,
            'status': self.status.value,
            'lines': [line.to_dict() for line in self.lines],
        }

    def __repr__(self):
        return f'<Invoice {self.invoice_number} {self.status.value}>'

class InvoiceLine(db.Model):
    __tablename__ = 'invoice_lines'

    id = db.Column(db.Integer, primary_key=True)
    invoice_id = db.Column(db.Integer, db.ForeignKey('invoices.id'), nullable=False, index=True)
    description = db.Column(db.String(250), nullable=False)
    amount = db.Column(db.Float, nullable=False, default=0.0)
    tax_amount = db.Column(db.Float, nullable=False, default=0.0)

    def to_dict(self):
        return {
            'id': self.id,
            'description': self.description,
            'amount': self.amount,
            'tax_amount': self.tax_amount,
        }

class AuditLog(db.Model):
    __tablename__ = 'audit_logs'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, index=True)

    # Action details
    action = db.Column(db.String(100), nullable=False, index=True)
    entity_type = db.Column(db.String(50), index=True)
    entity_id = db.Column(db.Integer)
    new_values = db.Column(db.Text)  # JSON

    # Request context
    ip_address = db.Column(db.String(45))
    user_agent = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, default=get_local_time_naive, index=True)

    __table_args__ = (
        Index('idx_audit_entity', 'entity_type', 'entity_id'),
    )

    def get_details(self):
        return json.loads(self.new_values) if self.new_values else {}
