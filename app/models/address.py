from sqlmodel import SQLModel, Field
from datetime import datetime
from uuid import UUID, uuid4

class Address(SQLModel, table=True):
    id: UUID = Field(default_factory=uuid4, primary_key=True)
    user_id: UUID = Field(foreign_key="user.id", index=True)
    save_as: str
    pincode: str
    city: str
    state: str
    house_number: str
    street_locality: str
    mobile: str
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)
