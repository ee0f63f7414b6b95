from __future__ import annotations

"""
Write-once forms: volunteer applications, custom trip requests and the
profile name edit. Each one needs a signed-in identity and is rejected before
any remote call otherwise; store errors propagate unchanged.
"""

import logging
from typing import Optional

from pydantic import BaseModel, EmailStr, Field

from schemas import CustomRequest, Listing, VolunteerApplication

logger = logging.getLogger(__name__)


class FormError(Exception):
    pass


class VolunteerApplicationForm(BaseModel):
    name: str = Field(..., min_length=1)
    email: EmailStr
    skills: str = ""
    motivation: str = Field(..., min_length=1)
    availability: str = ""


class CustomRequestForm(BaseModel):
    destination: str = ""
    travel_dates: str = ""
    travelers: int = Field(1, ge=1)
    trip_details: str = Field(..., min_length=1)
    budget: Optional[float] = Field(None, ge=0)
    full_name: Optional[str] = None
    email: Optional[EmailStr] = None
    phone: Optional[str] = None
    whatsapp_number: Optional[str] = None


class ProfileForm(BaseModel):
    full_name: str = Field(..., min_length=1, max_length=200)


def _require_identity(auth, message: str):
    identity = auth.identity
    if identity is None:
        raise FormError(message)
    return identity


def compose_trip_details(form: CustomRequestForm) -> str:
    return "\n".join([
        f"Destination: {form.destination}",
        f"Travel Dates: {form.travel_dates}",
        f"Travelers: {form.travelers}",
        f"Details: {form.trip_details}",
    ])


def submit_volunteer_application(client, auth, opportunity: Optional[Listing],
                                 form: VolunteerApplicationForm) -> VolunteerApplication:
    identity = _require_identity(auth, "Please sign in to apply")
    if opportunity is None:
        raise FormError("Volunteer opportunity not found.")
    row = client.insert("volunteer_applications", {
        "opportunity_id": opportunity.id,
        "user_id": identity.id,
        "name": form.name,
        "email": form.email,
        "skills": form.skills,
        "motivation": form.motivation,
        "availability": form.availability,
    })
    logger.info("Volunteer application %s for %s", row.get("id"), opportunity.id)
    return VolunteerApplication(**row)


def submit_custom_request(client, auth, form: CustomRequestForm) -> CustomRequest:
    identity = _require_identity(auth, "Please sign in to send a custom trip request")
    row = client.insert("custom_requests", {
        "user_id": identity.id,
        "trip_details": compose_trip_details(form),
        "budget": form.budget,
        "status": "pending",
        "full_name": form.full_name,
        "email": form.email or identity.email,
        "phone": form.phone,
        "whatsapp_number": form.whatsapp_number,
    })
    logger.info("Custom request %s created", row.get("id"))
    return CustomRequest(**row)


def update_full_name(client, auth, form: ProfileForm) -> None:
    identity = _require_identity(auth, "Please sign in to update your profile")
    client.update("profiles", {"full_name": form.full_name.strip()}, {"id": identity.id})
