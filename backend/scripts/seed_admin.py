#!/usr/bin/env python3
"""
Admin User Seed Script
Creates the first admin user for the RTI Tracker mirror configured by the
RTI_* environment variables. The sign-in key is printed once.

Usage:
    python -m scripts.seed_admin <name> <external_identity_number> [wallet_address]

Example:
    python -m scripts.seed_admin "District Admin" 123412341234
"""
import sys
from typing import Optional, Tuple

from rti_tracker.config import Settings, get_settings
from rti_tracker.errors import DuplicateUser
from rti_tracker.models.domain import Role, User
from rti_tracker.services.mirror import create_store
from rti_tracker.services.users import UserRegistry


def create_admin_user(
    settings: Settings,
    name: str,
    external_identity_number: str,
    wallet_address: str = "",
) -> Optional[Tuple[User, str]]:
    """Register an admin. Returns None if the identity number is taken."""
    store = create_store(settings)
    try:
        return UserRegistry(store).register_user(name, external_identity_number, Role.ADMIN, wallet_address)
    except DuplicateUser:
        existing = store.find_user_by_identity(external_identity_number)
        print(f"Error: identity number already registered to {existing.id} ({existing.role.value}).")
        return None
    finally:
        store.close()


def main():
    if len(sys.argv) not in (3, 4):
        print(__doc__)
        sys.exit(1)

    name = sys.argv[1]
    identity = sys.argv[2]
    wallet = sys.argv[3] if len(sys.argv) == 4 else ""

    if not identity.strip():
        print("Error: identity number must not be empty.")
        sys.exit(1)

    created = create_admin_user(get_settings(), name, identity, wallet)
    if created is None:
        sys.exit(1)

    user, signin_key = created
    print("Admin user created successfully!")
    print(f"  User id:     {user.id}")
    print(f"  Sign-in key: {signin_key}")
    print("Store the sign-in key now; it cannot be shown again.")


if __name__ == "__main__":
    main()
