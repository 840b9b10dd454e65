"""Identity mapping models."""

from __future__ import annotations

from datetime import UTC, datetime

from pydantic import BaseModel, Field


class IdentityMapping(BaseModel):
    """One-way mapping from an account email to the webhook-side user id.

    Created once per email and never overwritten.
    """

    email: str
    external_user_id: str
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
