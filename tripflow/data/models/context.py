"""Request context passed to every lifecycle operation."""

from typing import Optional

from pydantic import BaseModel


class RequestContext(BaseModel):
    """Who is acting, on whose behalf, and through which surface."""

    owner_id: str
    user_id: Optional[str] = None
    driver_id: Optional[str] = None
    actor_name: Optional[str] = None
    source: str = "web"

    @property
    def actor(self) -> str:
        return self.actor_name or self.user_id or self.driver_id or "system"
