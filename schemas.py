"""
Records as they come back from the hosted store.

One model per table (listings, bookings, profiles, volunteer_applications,
custom_requests). The store owns these rows; the app only holds copies.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

CATEGORIES = ("tour", "stay", "volunteer")
PAYMENT_STATUSES = ("pending", "paid", "partial")


class Listing(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    category: str = Field(..., description="tour | stay | volunteer")
    price: Optional[float] = Field(None, ge=0)
    rating: Optional[float] = None
    location: Optional[str] = None
    type: Optional[str] = Field(None, description="Sub-category, e.g. Safari or Conservation")
    availability: Optional[Dict[str, Any]] = None
    images: Optional[List[str]] = None
    features: Any = None
    amenities: Any = None
    itinerary: Any = None
    created_at: Optional[str] = None
    status: Optional[str] = Field(None, description="published | draft | archived")


class ListingSummary(BaseModel):
    title: str
    images: Optional[List[str]] = None
    category: str


class Booking(BaseModel):
    id: str
    created_at: Optional[str] = None
    listing_id: str
    user_id: Optional[str] = None
    total_amount: float = Field(..., ge=0)
    guests: Optional[int] = None
    check_in_date: Optional[str] = None
    check_out_date: Optional[str] = None
    payment_status: str = Field("pending", description="pending | paid | partial")
    payment_plan: str = Field("full", description="full | deposit | lipa_mdogo_mdogo")
    paystack_ref: Optional[str] = None
    listings: Optional[ListingSummary] = None


class Profile(BaseModel):
    id: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    role: str = Field("user", description="user | admin")


class VolunteerApplication(BaseModel):
    id: str
    opportunity_id: str
    user_id: str
    name: str
    email: str
    skills: str
    motivation: str
    availability: str
    created_at: Optional[str] = None


class CustomRequest(BaseModel):
    id: str
    user_id: Optional[str] = None
    trip_details: str
    budget: Optional[float] = None
    status: str = "pending"
    created_at: Optional[str] = None
    full_name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    whatsapp_number: Optional[str] = None
