"""
Query predicates over mirror records.

Small composable callables for list_requests_by / list_complaints_by:

    store.list_requests_by(all_of(by_officer(officer_id), by_status(RequestStatus.ASSIGNED)))
"""
from typing import Callable, TypeVar

from ...models.domain import Complaint, Request, RequestStatus

T = TypeVar("T")


def by_client(client_id: str) -> Callable[[Request], bool]:
    return lambda r: r.client_id == client_id


def by_officer(officer_user_id: str) -> Callable[[Request], bool]:
    return lambda r: r.assigned_officer_user_id == officer_user_id


def by_status(status: RequestStatus) -> Callable[[Request], bool]:
    status = RequestStatus(status)
    return lambda r: r.status == status


def by_content(content_id: str) -> Callable[[Request], bool]:
    """Requests whose request or response document has this content id."""
    return lambda r: content_id in (r.request_hash, r.response_hash)


def all_of(*predicates: Callable[[T], bool]) -> Callable[[T], bool]:
    return lambda record: all(p(record) for p in predicates)


def any_of(*predicates: Callable[[T], bool]) -> Callable[[T], bool]:
    return lambda record: any(p(record) for p in predicates)


# Complaint predicates

def complaint_for_request(request_id: str) -> Callable[[Complaint], bool]:
    return lambda c: c.request_id == str(request_id)


def complaint_by_client(client_user_id: str) -> Callable[[Complaint], bool]:
    return lambda c: c.client_user_id == client_user_id


def complaint_by_officer(officer_user_id: str) -> Callable[[Complaint], bool]:
    return lambda c: c.officer_user_id == officer_user_id
