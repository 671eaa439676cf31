#!/usr/bin/env python3
"""
Database Management Commands for the FleetX manifest engine

Usage:
    python database_commands.py --help
    python database_commands.py init
    python database_commands.py status
    python database_commands.py config
"""

import sys
import argparse
import logging
from datetime import datetime
from sqlalchemy import func, inspect, text
from app import create_app, db

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

def setup_app_context(config_overrides=None):
    """Setup Flask application context for database operations."""
    app = create_app(config_overrides)
    return app.app_context()

def cmd_init(args):
    """Create any missing tables."""
    with setup_app_context():
        db.create_all()
        tables = sorted(inspect(db.engine).get_table_names())
        print(f"✅ Schema ready: {len(tables)} tables")
        for table in tables:
            print(f"  {table}")

def cmd_status(args):
    """Display connection, table counts and trip/invoice status breakdowns."""
    from models import Trip, Invoice

    with setup_app_context():
        print("=" * 60)
        print("DATABASE STATUS REPORT")
        print("=" * 60)

        try:
            db.session.execute(text('SELECT 1'))
            print("Connection Status: ✅ HEALTHY")
        except Exception as e:
            print("Connection Status: ❌ FAILED")
            print(f"Connection Error: {str(e)}")
            sys.exit(1)

        print(f"Engine: {db.engine.dialect.name}")
        print("\nTable Statistics:")
        for table in sorted(inspect(db.engine).get_table_names()):
            count = db.session.execute(text(f'SELECT COUNT(*) FROM "{table}"')).scalar()
            print(f"  {table}: {count} records")

        print("\nTrips by status:")
        for status, count in db.session.query(Trip.status, func.count(Trip.id)).group_by(Trip.status).all():
            print(f"  {status.value}: {count}")

        print("\nInvoices by status:")
        for status, count in db.session.query(Invoice.status, func.count(Invoice.id)).group_by(Invoice.status).all():
            print(f"  {status.value}: {count}")

        print(f"\nReport Generated: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")

def cmd_config(args):
    """Validate billing and lifecycle configuration."""
    from utils.config_validator import require_valid_billing_config, ConfigValidationError

    app = create_app()

    print("Billing configuration:")
    for key in ('BILLING_TAX_RATE', 'BILLING_BASE_RATE_24FT', 'BILLING_BASE_RATE_DEFAULT',
                'BILLING_PALLET_RATE', 'BILLING_HELPER_FEE', 'BILLING_POD_FEE', 'BILLING_CURRENCY'):
        print(f"  {key}: {app.config.get(key)}")
    print(f"Require completed trip: {app.config['BILLING_REQUIRE_COMPLETED_TRIP']}")
    print(f"Enforce trip transitions: {app.config['TRIP_ENFORCE_TRANSITIONS']}")

    try:
        require_valid_billing_config(app.config)
    except ConfigValidationError as e:
        print(f"❌ Configuration invalid - {len(e.issues)} issues found:")
        for i, issue in enumerate(e.issues, 1):
            print(f"  {i}. {issue}")
        sys.exit(1)

    print("✅ Configuration valid")

def main(argv=None):
    """Main command line interface."""
    parser = argparse.ArgumentParser(
        description="Database Management Commands for the FleetX manifest engine",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')
    subparsers.add_parser('init', help='Create database tables')
    subparsers.add_parser('status', help='Display database status')
    subparsers.add_parser('config', help='Validate billing configuration')

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(1)

    commands = {
        'init': cmd_init,
        'status': cmd_status,
        'config': cmd_config,
    }

    try:
        commands[args.command](args)
    except KeyboardInterrupt:
        print("\nOperation cancelled by user")
        sys.exit(1)
    except Exception as e:
        logger.exception("Unexpected error occurred")
        print(f"❌ Unexpected error: {str(e)}")
        sys.exit(1)

if __name__ == "__main__":
    main()
