from datetime import datetime

from sqlmodel import Field, SQLModel


class User(SQLModel, table=True):
    """Schedule owner. `name` is copied into notification text."""
    __tablename__ = "users"
    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    hashed_password: str
    name: str = ""
    is_active: bool = True
    created_at: datetime | None = Field(default_factory=datetime.utcnow)
    last_login_at: datetime | None = None
