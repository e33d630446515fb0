from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict


class AuthLoginRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str | None = None
    password: str | None = None
    portal: Optional[Literal["clinic", "admin"]] = None


class AuthSignupRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    email: str | None = None
    password: str | None = None
    fullName: str | None = None
