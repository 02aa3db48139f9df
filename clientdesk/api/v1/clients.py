from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List, Optional

from ...core.database import get_db
from ...api.deps import get_current_user
from ...services.client_service import ClientService
from ...schemas.client import (
    ClientCreate, ClientUpdate, ClientResponse, ConsentSignature,
    SessionCreate, SessionUpdate, SessionResponse, BalanceResponse
)
from ...models.user import User

router = APIRouter(prefix="/clients", tags=["Clients"])


def get_client_service(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user)
) -> ClientService:
    return ClientService(db, current_user)


@router.post("", response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
async def create_client(
    client_data: ClientCreate,
    service: ClientService = Depends(get_client_service)
):
    """Create a client record."""
    return service.create_client(client_data)


@router.get("", response_model=List[ClientResponse])
async def list_clients(
    search: Optional[str] = None,
    skip: int = 0,
    limit: int = 100,
    service: ClientService = Depends(get_client_service)
):
    """List clients, optionally filtered by name, email, phone, code or notes."""
    return service.list_clients(search=search, skip=skip, limit=limit)


@router.get("/{client_id}", response_model=ClientResponse)
async def get_client(
    client_id: int,
    service: ClientService = Depends(get_client_service)
):
    return service.get_client(client_id)


@router.patch("/{client_id}", response_model=ClientResponse)
async def update_client(
    client_id: int,
    client_data: ClientUpdate,
    service: ClientService = Depends(get_client_service)
):
    return service.update_client(client_id, client_data)


@router.post("/{client_id}/consent", response_model=ClientResponse)
async def sign_consent(
    client_id: int,
    consent_data: ConsentSignature,
    service: ClientService = Depends(get_client_service)
):
    """Attach a signed consent form to a client."""
    return service.sign_consent(client_id, consent_data)


@router.delete("/{client_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_client(
    client_id: int,
    service: ClientService = Depends(get_client_service)
):
    """Delete a client together with their appointments and sessions."""
    service.delete_client(client_id)


# Treatment sessions
@router.post(
    "/{client_id}/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_201_CREATED
)
async def add_session(
    client_id: int,
    session_data: SessionCreate,
    service: ClientService = Depends(get_client_service)
):
    return service.add_session(client_id, session_data)


@router.get("/{client_id}/sessions", response_model=List[SessionResponse])
async def list_sessions(
    client_id: int,
    service: ClientService = Depends(get_client_service)
):
    return service.list_sessions(client_id)


@router.patch("/{client_id}/sessions/{session_id}", response_model=SessionResponse)
async def update_session(
    client_id: int,
    session_id: int,
    session_data: SessionUpdate,
    service: ClientService = Depends(get_client_service)
):
    return service.update_session(client_id, session_id, session_data)


@router.delete("/{client_id}/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(
    client_id: int,
    session_id: int,
    service: ClientService = Depends(get_client_service)
):
    service.delete_session(client_id, session_id)


@router.get("/{client_id}/balance", response_model=BalanceResponse)
async def get_balance(
    client_id: int,
    service: ClientService = Depends(get_client_service)
):
    """Open amount across all sessions of a client."""
    return service.balance(client_id)
