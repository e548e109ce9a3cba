#!/usr/bin/env python3
"""Seed script: wastetraq certification catalog.

Inserts the default certification programs (ISO 14001, GRESB, B Corp, ...)
that are missing by name. Existing rows are left untouched, so the script
is safe to re-run after an admin has edited the catalog.

Usage:
    # From the repo root:
    cd apps/api && python ../../scripts/seed_certifications.py
    cd apps/api && python ../../scripts/seed_certifications.py --dry-run
    cd apps/api && python ../../scripts/seed_certifications.py --demo

Flags:
    --dry-run   Print what would be seeded without committing anything.
    --demo      Also seed demo organisations (staging / demo env only).
"""

from __future__ import annotations

import argparse
import os
import sys

# Allow running from the repo root or from apps/api/
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "apps", "api"))

from app.core.config import settings
from app.models.certification import CertificationType
from app.models.core import Organization
from app.models.enums import OrgType
from app.modules.certification.catalog import DEFAULT_CERTIFICATION_TYPES

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session as SyncSession


def seed_catalog(session: SyncSession, dry_run: bool) -> int:
    existing = set(session.execute(select(CertificationType.name)).scalars().all())
    created = 0
    for entry in DEFAULT_CERTIFICATION_TYPES:
        if entry["name"] in existing:
            print(f"  [skip]    '{entry['name']}' already exists")
            continue
        print(f"  [create]  '{entry['name']}' ({entry['validity_period']} months)")
        if not dry_run:
            session.add(CertificationType(**entry))
        created += 1
    if not dry_run:
        session.flush()
    return created


def seed_demo(session: SyncSession, dry_run: bool) -> int:
    """Demo organisations only; users are provisioned through Clerk."""
    demo_orgs = [
        {"name": "Northside Recycling Co", "slug": "northside-recycling", "type": OrgType.BUSINESS},
        {"name": "CleanStream Compliance", "slug": "cleanstream-compliance", "type": OrgType.VENDOR},
    ]
    created = 0
    for org_data in demo_orgs:
        existing = session.execute(
            select(Organization).where(Organization.slug == org_data["slug"])
        ).scalar_one_or_none()
        if existing:
            print(f"  [skip]    Demo org '{org_data['slug']}' already exists")
            continue
        print(f"  [create]  Demo org '{org_data['name']}'")
        if not dry_run:
            session.add(Organization(industry="Waste Management", **org_data))
        created += 1
    if not dry_run:
        session.flush()
    return created


def main() -> None:
    parser = argparse.ArgumentParser(description="wastetraq certification catalog seed script")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be seeded without writing to the database",
    )
    parser.add_argument(
        "--demo",
        action="store_true",
        help="Also seed demo organisations (staging/demo only)",
    )
    args = parser.parse_args()

    dry_run: bool = args.dry_run

    if dry_run:
        print("=" * 60)
        print("DRY RUN: no changes will be committed")
        print("=" * 60)

    engine = create_engine(settings.DATABASE_URL_SYNC, echo=False)
    totals: dict[str, int] = {}

    with SyncSession(engine) as session:
        print("\n--- Certification Catalog ---")
        totals["certification_types"] = seed_catalog(session, dry_run)

        if args.demo:
            print("\n--- Demo Organisations ---")
            totals["organizations"] = seed_demo(session, dry_run)

        if not dry_run:
            session.commit()
            print("\n[OK] All changes committed.")
        else:
            session.rollback()
            print("\n[DRY RUN] No changes committed.")

    print("\n=== Seed Summary ===")
    for category, count in totals.items():
        print(f"  {category:25s}: {count} rows created")

    if dry_run:
        print("\nRe-run without --dry-run to apply changes.")


if __name__ == "__main__":
    main()
