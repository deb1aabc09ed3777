'''
Billing clients: the find-or-create logic behind a booking and the
administrator's client management.
'''
from typing import Annotated, Optional

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from ..common.config import settings
from ..common.exceptions import DuplicatePerson, ValidationError
from ..common.logger import log
from ..database import models as db_models
from ..database.engine import get_db_session
from ..models import client as client_models


def is_tutoring_category(category: Optional[str]) -> bool:
    """Tutoring categories allow several clients (e.g. siblings) to share one email."""
    if not category:
        return False
    tutoring = {name.strip().lower() for name in settings.TUTORING_CATEGORIES}
    return category.strip().lower() in tutoring


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


class ClientService:
    """
    Service for resolving, reading and managing billing clients.
    """
    def __init__(self, db: Annotated[AsyncSession, Depends(get_db_session)]):
        self.db = db

    async def get_client_by_id(self, client_id: int) -> db_models.Clients:
        """Fetches a client by id. Raises 404 if not found."""
        client = await self.db.get(db_models.Clients, client_id)
        if not client:
            log.warning(f"Tried to fetch non-existing client: {client_id}")
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Client not found.")
        return client

    async def get_client_by_email(self, email: str) -> Optional[db_models.Clients]:
        stmt = select(db_models.Clients).filter(db_models.Clients.email_key == email.lower())
        result = await self.db.execute(stmt)
        return result.scalars().first()

    async def get_clients_for_user(self, user_id: int) -> list[db_models.Clients]:
        """All billing clients linked to a portal user, oldest first."""
        stmt = select(db_models.Clients).filter(
            db_models.Clients.user_id == user_id
        ).order_by(db_models.Clients.id)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def _insert(self, client: db_models.Clients) -> db_models.Clients:
        async with self.db.begin_nested():
            self.db.add(client)
            await self.db.flush()
        return client

    async def resolve_or_create(
        self,
        full_name: str,
        email: Optional[str],
        phone: Optional[str],
        category: Optional[str],
        payment_method: Optional[str] = None
    ) -> db_models.Clients:
        """
        Returns the client a booking should be billed to.

        - No email: a new walk-in client every time.
        - Tutoring category: always a new client; re-submitting the same
          (name, email, category) raises DuplicatePerson.
        - Any other category: email is the natural key, the existing client
          is returned when there is one.
        """
        full_name = _clean(full_name)
        email = _clean(email)
        phone = _clean(phone)
        category = _clean(category) or settings.DEFAULT_CLIENT_CATEGORY

        new_client = db_models.Clients(
            full_name=full_name,
            email=email,
            phone=phone,
            category=category,
            payment_method=payment_method
        )

        if email is None:
            log.info(f"Creating walk-in client '{full_name}' (no email).")
            return await self._insert(new_client)

        if is_tutoring_category(category):
            log.info(f"Creating tutoring client '{full_name}' <{email}> in '{category}'.")
            try:
                return await self._insert(new_client)
            except IntegrityError:
                log.warning(f"Duplicate tutoring client '{full_name}' <{email}> in '{category}'.")
                raise DuplicatePerson(
                    f"'{full_name}' is already registered with {email} under {category}."
                )

        existing = await self.get_client_by_email(email)
        if existing:
            log.info(f"Reusing client {existing.id} for <{email}>.")
            return existing

        new_client.email_key = email.lower()
        try:
            client = await self._insert(new_client)
            log.info(f"Created client {client.id} for <{email}>.")
            return client
        except IntegrityError:
            # Lost the race to a concurrent insert; the winner's row is the answer.
            existing = await self.get_client_by_email(email)
            if existing is None:
                raise
            log.info(f"Client for <{email}> was created concurrently, reusing {existing.id}.")
            return existing

    # --- Administrator client management ---

    @staticmethod
    def _email_key(email: Optional[str], category: Optional[str]) -> Optional[str]:
        if email is None or is_tutoring_category(category):
            return None
        return email.lower()

    async def list_clients(self) -> list[db_models.Clients]:
        """Every client, newest first."""
        stmt = select(db_models.Clients).order_by(db_models.Clients.id.desc())
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def create_client(self, client_data: client_models.ClientCreate) -> db_models.Clients:
        """
        Adds a client by hand. Unlike booking, an email already on file is
        not reused: the administrator gets DuplicatePerson instead.
        """
        full_name = _clean(client_data.full_name)
        if full_name is None:
            raise ValidationError("Full name is required.")
        email = _clean(client_data.email)
        category = _clean(client_data.category) or settings.DEFAULT_CLIENT_CATEGORY

        client = db_models.Clients(
            full_name=full_name,
            email=email,
            phone=_clean(client_data.phone),
            category=category,
            payment_method=_clean(client_data.payment_method),
            email_key=self._email_key(email, category)
        )
        try:
            client = await self._insert(client)
        except IntegrityError:
            log.warning(f"Admin tried to add a duplicate client '{full_name}' <{email}> in '{category}'.")
            raise DuplicatePerson(f"A client '{full_name}' with {email} already exists under {category}.")
        log.info(f"Admin created client {client.id} '{full_name}'.")
        return client

    async def update_client(self, client_id: int, update_data: client_models.ClientUpdate) -> db_models.Clients:
        """Applies the allow-listed fields that were sent."""
        log.info(f"Updating client {client_id}.")
        client = await self.get_client_by_id(client_id)

        changes = update_data.model_dump(exclude_unset=True)
        if not changes:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No fields provided to update.")
        if "full_name" in changes and _clean(changes["full_name"]) is None:
            raise ValidationError("Full name is required.")

        try:
            async with self.db.begin_nested():
                for key, value in changes.items():
                    setattr(client, key, _clean(value))
                if not client.category:
                    client.category = settings.DEFAULT_CLIENT_CATEGORY
                client.email_key = self._email_key(client.email, client.category)
                await self.db.flush()
        except IntegrityError:
            log.warning(f"Updating client {client_id} would duplicate another client.")
            raise DuplicatePerson("Another client already uses that name, email and category.")

        await self.db.refresh(client)
        log.info(f"Client {client_id} updated: {sorted(changes)}")
        return client

    async def delete_client(self, client_id: int) -> dict[str, str]:
        """Deletes a client together with its appointments."""
        log.info(f"Deleting client {client_id}.")
        client = await self.get_client_by_id(client_id)
        await self.db.delete(client)
        await self.db.flush()
        return {"message": "Client deleted successfully."}
