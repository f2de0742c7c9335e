from pydantic import BaseModel


class UserCreate(BaseModel):
    email: str


class UserCreated(BaseModel):
    id: str
    email: str
    token: str
    created_at: str
