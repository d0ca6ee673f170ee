from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field


class TenantContext(BaseModel):
    business_id: str = Field(..., description="Active tenant (business) identifier")
    source: str = Field(default="header", description="Where the identifier was read from: header or cookie")

    @classmethod
    def from_request(cls, header_value: Optional[str], cookie_value: Optional[str]) -> Optional["TenantContext"]:
        if header_value and header_value.strip():
            return cls(business_id=header_value.strip(), source="header")
        if cookie_value and cookie_value.strip():
            return cls(business_id=cookie_value.strip(), source="cookie")
        return None
