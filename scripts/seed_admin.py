"""
Seed an organization and its first admin login.

Usage:
    python scripts/seed_admin.py --email admin@acme.com --password 'S3cret!'
    python scripts/seed_admin.py --org "Acme Support" --email ... --password ... --paid
    python scripts/seed_admin.py --env production ...

This script is idempotent — an existing admin is left untouched.
"""

import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from microcoach import create_app
from microcoach.core.exceptions import ValidationError
from microcoach.models import db
from microcoach.services.org_service import seed_admin


def main():
    parser = argparse.ArgumentParser(description="Seed an organization and admin user")
    parser.add_argument("--env", default=os.getenv("APP_ENV", "development"), help="App environment")
    parser.add_argument("--org", default="Default Organization", help="Organization name")
    parser.add_argument("--email", required=True)
    parser.add_argument("--password", required=True)
    parser.add_argument("--paid", action="store_true", help="Mark the organization as paid")
    args = parser.parse_args()

    app = create_app(args.env)

    with app.app_context():
        try:
            org, admin, created = seed_admin(args.org, args.email, args.password)
        except ValidationError as e:
            print(f"Error: {e}", file=sys.stderr)
            sys.exit(1)

        if args.paid and not org.is_paid:
            org.is_paid = True
            db.session.commit()

        state = "created" if created else "already exists"
        print(f"Admin {admin.email} {state} (organization {org.id}: {org.name}, paid={org.is_paid})")


if __name__ == "__main__":
    main()
