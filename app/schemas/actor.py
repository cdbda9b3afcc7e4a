"""
Authenticated caller identity supplied by the request boundary
"""
from pydantic import BaseModel
from typing import Literal


class Role:
    STUDENT = "student"
    TEACHER = "teacher"
    ADMIN = "admin"


class Actor(BaseModel):
    """Verified user id and role claim"""
    user_id: str
    role: Literal["student", "teacher", "admin"]

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_teacher(self) -> bool:
        return self.role == Role.TEACHER

    @property
    def is_student(self) -> bool:
        return self.role == Role.STUDENT
