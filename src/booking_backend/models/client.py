'''
Pydantic models for clients and the client-portal identity.
'''
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..database.db_enums import UserRole


class ClientRead(BaseModel):
    id: int
    full_name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    category: Optional[str] = None
    payment_method: Optional[str] = None
    user_id: Optional[int] = None

    model_config = ConfigDict(from_attributes=True)


class PortalIdentity(BaseModel):
    """
    The caller of a client-portal route, resolved from the identity headers.
    """
    user_id: int
    username: str
    email: str
    name: str
    role: UserRole

    @property
    def can_use_client_portal(self) -> bool:
        return self.role != UserRole.ADMIN


class ClientProfileRead(BaseModel):
    user_id: int
    username: str
    name: str
    email: str
    client: Optional[ClientRead] = None


# --- Administrator client management ---

class ClientCreate(BaseModel):
    full_name: str = Field(..., min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    category: Optional[str] = None
    payment_method: Optional[str] = None


class ClientUpdate(BaseModel):
    """
    The client fields an administrator may edit. Anything else is refused.
    """
    full_name: Optional[str] = Field(None, min_length=1)
    email: Optional[str] = None
    phone: Optional[str] = None
    category: Optional[str] = None
    payment_method: Optional[str] = None

    model_config = ConfigDict(extra='forbid')
