from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class StudentCreate(BaseModel):
    name: str
    access_code: str
    institution_id: Optional[int] = None
    class_name: Optional[str] = None
    division: Optional[str] = None


class StudentRead(BaseModel):
    id: int
    name: str
    institution_id: Optional[int] = None
    class_name: Optional[str] = None
    division: Optional[str] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class StudentLogin(BaseModel):
    access_code: str


class InstitutionCreate(BaseModel):
    name: str


class InstitutionRead(BaseModel):
    id: int
    name: str

    model_config = {"from_attributes": True}
