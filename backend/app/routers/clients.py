"""Client management router.

Endpoints:
    GET    /api/clients/          List all clients
    POST   /api/clients/          Create client
    GET    /api/clients/{id}      Client detail
    PATCH  /api/clients/{id}      Update client
    DELETE /api/clients/{id}      Deactivate client (idempotent)
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.middleware.exceptions import ResourceNotFoundError
from app.models.client import Client
from app.schemas.client import ClientCreate, ClientOut, ClientUpdate
from app.utils.activity import log_activity

router = APIRouter()


async def _get_client(db: AsyncSession, client_id: str) -> Client:
    result = await db.execute(select(Client).where(Client.id == client_id))
    client = result.scalar_one_or_none()
    if not client:
        raise ResourceNotFoundError("Client", client_id)
    return client


@router.get("/", response_model=list[ClientOut])
async def list_clients(
    include_inactive: bool = False,
    db: AsyncSession = Depends(get_db),
):
    """List all clients (active by default)."""
    query = select(Client)
    if not include_inactive:
        query = query.where(Client.is_active == True)  # noqa: E712
    query = query.order_by(Client.name)
    result = await db.execute(query)
    return [ClientOut.model_validate(c) for c in result.scalars().all()]


@router.post("/", response_model=ClientOut, status_code=201)
async def create_client(body: ClientCreate, db: AsyncSession = Depends(get_db)):
    """Create a new client."""
    # Email is the client's billing address, one client per address
    existing = await db.execute(select(Client).where(Client.email == body.email))
    if existing.scalar_one_or_none():
        raise HTTPException(
            status_code=400, detail=f"A client with email '{body.email}' already exists"
        )

    client = Client(**body.model_dump())
    db.add(client)
    await db.commit()
    out = ClientOut.model_validate(client)

    await log_activity(
        db,
        action="created",
        entity_type="client",
        entity_id=out.id,
        summary=f"Client {out.name} created",
        details={"email": out.email},
    )
    return out


@router.get("/{client_id}", response_model=ClientOut)
async def get_client(client_id: str, db: AsyncSession = Depends(get_db)):
    return ClientOut.model_validate(await _get_client(db, client_id))


@router.patch("/{client_id}", response_model=ClientOut)
async def update_client(
    client_id: str,
    body: ClientUpdate,
    db: AsyncSession = Depends(get_db),
):
    """Update a client."""
    client = await _get_client(db, client_id)
    updates = body.model_dump(exclude_unset=True)
    for key, value in updates.items():
        setattr(client, key, value)
    await db.commit()
    await db.refresh(client)
    out = ClientOut.model_validate(client)

    await log_activity(
        db,
        action="updated",
        entity_type="client",
        entity_id=out.id,
        summary=f"Client {out.name} updated",
        details=body.model_dump(mode="json", exclude_unset=True),
    )
    return out


@router.delete("/{client_id}", response_model=ClientOut)
async def deactivate_client(client_id: str, db: AsyncSession = Depends(get_db)):
    """Soft-delete (deactivate) a client.  Repeated calls leave it inactive."""
    client = await _get_client(db, client_id)
    if not client.is_active:
        return ClientOut.model_validate(client)

    client.is_active = False
    await db.commit()
    await db.refresh(client)
    out = ClientOut.model_validate(client)

    await log_activity(
        db,
        action="deactivated",
        entity_type="client",
        entity_id=out.id,
        summary=f"Client {out.name} deactivated",
    )
    return out
