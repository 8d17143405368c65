#!/usr/bin/env python3
"""
Reset development database - creates fresh schema and seeds demo domains,
users and verified interventions.
Run from the backend/ directory.
"""
import os
from decimal import Decimal
from pathlib import Path

# Ensure we're in the backend directory
backend_dir = Path(__file__).parent
os.chdir(backend_dir)

# Force load .env before importing carbon_ledger modules
from dotenv import load_dotenv  # noqa: E402

load_dotenv(backend_dir / ".env", override=True)

# Always target the local sqlite dev DB for this script.
os.environ["DATABASE_URL"] = "sqlite:///./dev.db"

from carbon_ledger import models  # noqa: E402
from carbon_ledger.core.security import create_access_token_for_subject  # noqa: E402
from carbon_ledger.database import Base, SessionLocal, engine  # noqa: E402

DOMAINS = [
    # name, company, email, supply chain level
    ("carbonleap.nl", "CarbonLeap", "ops@carbonleap.nl", 1),
    ("northsea-shipping.com", "North Sea Shipping", "esg@northsea-shipping.com", 2),
    ("greenfreight.eu", "Green Freight", "sustainability@greenfreight.eu", 3),
]

USERS = [
    # email, name, domain name, admin
    ("admin@carbonleap.nl", "Admin", "carbonleap.nl", True),
    ("ops@northsea-shipping.com", "North Sea Ops", "northsea-shipping.com", False),
    ("esg@greenfreight.eu", "Green Freight ESG", "greenfreight.eu", False),
]

INTERVENTIONS = [
    # external id, owning domain, amount, vintage, modality, fuel
    ("INT-2024-0001", "northsea-shipping.com", "500", "2024", "Maritime", "HVO100"),
    ("INT-2024-0002", "northsea-shipping.com", "1250.5", "2024", "Maritime", "Bio-LNG"),
    ("INT-2023-0003", "greenfreight.eu", "320", "2023", "Road", "B100"),
]


def main():
    db_path = backend_dir / "dev.db"

    if db_path.exists():
        print(f"Removing existing database: {db_path}")
        db_path.unlink()

    # Create all tables (SQLAlchemy) to match current ORM models.
    print("Creating database tables...")
    Base.metadata.create_all(bind=engine)
    print("Tables created")

    db = SessionLocal()
    try:
        by_name: dict[str, models.Domain] = {}
        for name, company, email, level in DOMAINS:
            d = models.Domain(
                name=name, company_name=company, company_email=email, supply_chain_level=level
            )
            db.add(d)
            by_name[name] = d
        db.flush()

        for email, name, domain_name, is_admin in USERS:
            db.add(
                models.User(
                    email=email, name=name, domain_id=by_name[domain_name].id, is_admin=is_admin
                )
            )

        for ext_id, domain_name, amount, vintage, modality, fuel in INTERVENTIONS:
            total = Decimal(amount)
            db.add(
                models.Intervention(
                    intervention_id=ext_id,
                    domain_id=by_name[domain_name].id,
                    total_amount=total,
                    remaining_amount=total,
                    vintage=vintage,
                    modality=modality,
                    low_carbon_fuel=fuel,
                    status=models.InterventionStatus.verified,
                )
            )

        # The two shipping/freight partners start with an active partnership.
        a, b = by_name["northsea-shipping.com"].id, by_name["greenfreight.eu"].id
        db.add(
            models.Partnership(
                domain1_id=a,
                domain2_id=b,
                domain_low_id=min(a, b),
                domain_high_id=max(a, b),
                status=models.PartnershipStatus.active,
            )
        )
        db.commit()

        print("Seeded domains, users, interventions and one active partnership")
        print("\nDev bearer tokens (valid 24h):")
        for email, *_ in USERS:
            print(f"  {email}: {create_access_token_for_subject(email, expires_minutes=24 * 60)}")

        print("\nDevelopment database reset complete!")
        print(f"   Database: {db_path}")
    finally:
        db.close()


if __name__ == "__main__":
    main()
