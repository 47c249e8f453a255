#!/usr/bin/env python3
"""
Mirror Migration Check
Opens the configured mirror store, which upgrades JSON documents or stamps
the SQL schema version, and prints what it holds along with any request
records that break lifecycle invariants.

Usage:
    python -m scripts.check_mirror
"""
import sys

from rti_tracker.config import Settings, get_settings
from rti_tracker.models.domain import RequestStatus, TimingKind
from rti_tracker.services.lifecycle import check_request_invariants
from rti_tracker.services.lifecycle.predicates import by_status
from rti_tracker.services.mirror import create_store


def check_mirror(settings: Settings) -> int:
    """Print a summary of the mirror; returns the number of inconsistent requests."""
    store = create_store(settings)
    try:
        print(f"Mirror backend: {settings.store_backend}")
        for status in RequestStatus:
            print(f"  {status.value:<10} {len(store.list_requests_by(by_status(status)))}")
        print(f"  complaints {len(store.list_complaints_by())} active, "
              f"{len(store.list_archived_complaints())} archived")
        for kind in TimingKind:
            print(f"  timings    {kind.value}: {len(store.list_timings(kind))}")

        broken = 0
        for request in store.list_requests_by():
            problems = check_request_invariants(request)
            if problems:
                broken += 1
                print(f"Request {request.id}: {'; '.join(problems)}")
        return broken
    finally:
        store.close()


def main():
    broken = check_mirror(get_settings())
    if broken:
        print(f"{broken} inconsistent request(s). Replay the ledger via POST /internal/reconcile.")
    sys.exit(1 if broken else 0)


if __name__ == "__main__":
    main()
