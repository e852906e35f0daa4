"""Contact management routes."""

import uuid
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Path, Query, Request, status
from sqlalchemy.orm import Session

from . import crud, schemas
from .database import get_db
from .exceptions import MalformedIdentifierException, NotFoundException
from .policies import PhonePolicy

#: Largest page size served; larger ``limit`` values are clamped to it.
MAX_PAGE_SIZE = 100

router = APIRouter(
    prefix="/contacts",
    tags=["contacts"],
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": schemas.ErrorResponse},
        status.HTTP_404_NOT_FOUND: {"model": schemas.ErrorResponse},
        status.HTTP_409_CONFLICT: {"model": schemas.ErrorResponse},
        status.HTTP_429_TOO_MANY_REQUESTS: {"model": schemas.ErrorResponse},
    },
)


def valid_contact_id(contact_id: str = Path(...)) -> str:
    """
    Check the identifier format before any lookup.

    Raises:
        MalformedIdentifierException: If ``contact_id`` is not a UUID.

    Returns:
        str: Identifier in canonical form.
    """
    try:
        return str(uuid.UUID(contact_id))
    except ValueError:
        raise MalformedIdentifierException()


def get_phone_policy(request: Request) -> PhonePolicy:
    return request.app.state.settings.phone_policy


@router.get("", response_model=schemas.ContactListResponse, response_model_exclude_none=True)
def list_contacts(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    search: str | None = Query(None),
    db: Session = Depends(get_db),
):
    """
    Retrieve a page of contacts sorted by name.

    Args:
        page (int): 1-based page number.
        limit (int): Page size, clamped to ``MAX_PAGE_SIZE``.
        search (str | None): Case-insensitive substring of the name.
        db (Session): Database session.

    Returns:
        ContactListResponse: Contacts with pagination totals.
    """
    limit = min(limit, MAX_PAGE_SIZE)
    contacts, total = crud.get_contacts(db, page=page, limit=limit, search=search)
    return {
        "success": True,
        "count": len(contacts),
        "total": total,
        "page": page,
        "pages": crud.page_count(total, limit),
        "data": contacts,
    }


@router.post(
    "",
    response_model=schemas.ContactResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
)
def create_contact(
    payload: Optional[Dict[str, Any]] = Body(None),
    db: Session = Depends(get_db),
    policy: PhonePolicy = Depends(get_phone_policy),
):
    """
    Create a new contact.

    Args:
        payload (dict): Contact fields ``name``, ``email`` and ``phone``.
        db (Session): Database session.
        policy (PhonePolicy): Active phone policy.

    Returns:
        ContactResponse: Created contact.
    """
    return {"success": True, "data": crud.create_contact(db, payload, policy)}


@router.get("/{contact_id}", response_model=schemas.ContactResponse, response_model_exclude_none=True)
def get_contact(contact_id: str = Depends(valid_contact_id), db: Session = Depends(get_db)):
    """
    Retrieve a single contact by ID.

    Raises:
        NotFoundException: If contact is not found.
    """
    contact = crud.get_contact(db, contact_id)
    if not contact:
        raise NotFoundException()
    return {"success": True, "data": contact}


@router.put("/{contact_id}", response_model=schemas.ContactResponse, response_model_exclude_none=True)
@router.patch("/{contact_id}", response_model=schemas.ContactResponse, response_model_exclude_none=True)
def update_contact(
    payload: Optional[Dict[str, Any]] = Body(None),
    contact_id: str = Depends(valid_contact_id),
    db: Session = Depends(get_db),
    policy: PhonePolicy = Depends(get_phone_policy),
):
    """
    Update an existing contact.

    Only fields provided in the request are changed, for both PUT and
    PATCH.

    Raises:
        NotFoundException: If contact is not found.
    """
    contact = crud.update_contact(db, contact_id, payload, policy)
    if not contact:
        raise NotFoundException()
    return {"success": True, "data": contact}


@router.delete("/{contact_id}", response_model=schemas.MessageResponse)
def delete_contact(contact_id: str = Depends(valid_contact_id), db: Session = Depends(get_db)):
    """
    Delete a contact.

    Raises:
        NotFoundException: If contact is not found.
    """
    contact = crud.get_contact(db, contact_id)
    if not contact:
        raise NotFoundException()
    crud.delete_contact(db, contact)
    return {"success": True, "message": "Contact deleted successfully"}
