"""
Role Migration Script
Seeds the permission catalogue and system roles, then moves legacy-only users
onto role-based access without touching users that already have roles
"""
import argparse

from payreq.core.database import SessionLocal, init_db
from payreq.services.permission_service import RoleService, seed_permissions


def migrate_roles(with_business_roles: bool = False, dry_run: bool = False):
    """Run role migration"""
    init_db()

    db = SessionLocal()
    try:
        seed_permissions(db)
        print("✓ Permission catalogue seeded")

        role_service = RoleService(db)
        created = role_service.ensure_system_roles()
        print(f"✓ System roles ensured ({created} created)")

        if with_business_roles:
            touched = role_service.ensure_business_roles()
            print(f"✓ Business roles ensured ({touched} created or refreshed)")

        migrated = role_service.migrate_legacy_users()
        print(f"✓ {migrated} legacy user(s) assigned a system role")

        if dry_run:
            db.rollback()
            print("\nDry run: role changes rolled back")
        else:
            db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

    print("\n" + "=" * 60)
    print("✓ Role migration completed successfully!")
    print("=" * 60)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Seed roles and migrate legacy users")
    parser.add_argument("--business-roles", action="store_true",
                        help="also create or refresh CEO, DIRECTOR, ... custom roles")
    parser.add_argument("--dry-run", action="store_true",
                        help="report what would change, then roll back")
    args = parser.parse_args()
    migrate_roles(with_business_roles=args.business_roles, dry_run=args.dry_run)
