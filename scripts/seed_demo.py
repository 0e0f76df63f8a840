"""Seed a demo institution into the database.

Usage:
    python scripts/seed_demo.py [--database-url URL] [--create-schema]

Creates one institution with a work group, three staff members (one of them
an approver), two leave types, a public holiday and an enrolled card. Safe to
run twice: an institution with the demo name is left untouched.
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from datetime import date, time

from sqlalchemy import select

from smartid.config import get_settings
from smartid.database import create_schema, dispose_db, get_session, init_db
from smartid.models import (
    Institution,
    InstitutionHoliday,
    LeaveType,
    SmartCard,
    User,
    UserWorkGroupAssignment,
    WorkGroup,
)

DEMO_INSTITUTION = "SmartID Demo School"

STAFF = [
    # employee_id, full_name, role, department
    ("DEMO001", "Nurul Aina", "staff", "Science"),
    ("DEMO002", "Kumar Raj", "staff", "Mathematics"),
    ("DEMO100", "Farid Ismail", "admin", "Administration"),
]

LEAVE_TYPES = [
    # name, code, quota days, color
    ("Annual Leave", "AL", 14, "#22c55e"),
    ("Sick Leave", "SL", 14, "#ef4444"),
]


async def seed(database_url: str, with_schema: bool) -> None:
    """Insert the demo data set."""
    engine, _ = init_db(database_url)
    print(f"Target database: {database_url.split('@')[1] if '@' in database_url else database_url}")

    try:
        if with_schema:
            await create_schema(engine)
            print("Schema created")

        async with get_session() as session:
            existing = await session.scalar(
                select(Institution.id).where(Institution.name == DEMO_INSTITUTION)
            )
            if existing is not None:
                print(f"Demo institution already present ({existing}), nothing to do")
                return

            institution = Institution(name=DEMO_INSTITUTION, timezone="Asia/Kuala_Lumpur")
            session.add(institution)
            await session.flush()

            work_group = WorkGroup(
                institution_id=institution.id,
                name="Office Hours",
                default_start_time=time(8, 0),
                default_end_time=time(17, 0),
                working_days=[1, 2, 3, 4, 5],
                late_threshold_minutes=15,
            )
            session.add(work_group)

            for order, (name, code, quota, color) in enumerate(LEAVE_TYPES, 1):
                session.add(
                    LeaveType(
                        institution_id=institution.id,
                        name=name,
                        code=code,
                        default_quota_days=quota,
                        color=color,
                        display_order=order,
                    )
                )

            session.add(
                InstitutionHoliday(
                    institution_id=institution.id,
                    name="Labour Day",
                    holiday_date=date(date.today().year, 5, 1),
                    is_recurring=True,
                )
            )
            await session.flush()

            for employee_id, full_name, role, department in STAFF:
                user = User(
                    institution_id=institution.id,
                    employee_id=employee_id,
                    full_name=full_name,
                    email=f"{employee_id.lower()}@demo.smartid.local",
                    primary_role=role,
                    department=department,
                )
                session.add(user)
                await session.flush()
                session.add(UserWorkGroupAssignment(user_id=user.id, work_group_id=work_group.id))
                session.add(SmartCard(user_id=user.id, nfc_id=f"CARD-{employee_id}"))
                print(f"  {employee_id} {full_name} ({role}) card CARD-{employee_id}")

        print(f"\nSeeded {DEMO_INSTITUTION} ({institution.id})")
    finally:
        await dispose_db()


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="Seed SmartID demo data")
    parser.add_argument(
        "--database-url",
        type=str,
        default=get_settings().database_url,
        help="Database URL (default: from settings)",
    )
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="Create tables before seeding",
    )

    args = parser.parse_args()

    try:
        asyncio.run(seed(args.database_url, args.create_schema))
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
