from __future__ import annotations

from typing import Optional

from pydantic import ConfigDict, Field

from booking_engine.schemas.base import WireModel


class SiteConfig(WireModel):
    model_config = ConfigDict(extra="ignore")

    show_appointments: bool = False


class SiteProfile(WireModel):
    """The slice of the site builder's client record the engine reads."""

    model_config = ConfigDict(extra="ignore")

    admin_email: Optional[str] = None
    email: Optional[str] = None
    business_name: Optional[str] = None
    config: SiteConfig = Field(default_factory=SiteConfig)

    @property
    def owner_email(self) -> Optional[str]:
        return self.admin_email or self.email
