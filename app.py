
from __future__ import annotations

import os
import hmac
import logging
from contextlib import asynccontextmanager
from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, EmailStr, Field
from typing import Dict, List, Optional

from auth import AuthContext, AuthError
from booking import BookingError, BookingForm, BookingWorkflow, SignInRequired, amount_due
from config import load_settings
from forms import (CustomRequestForm, FormError, ProfileForm, VolunteerApplicationForm,
                   submit_custom_request, submit_volunteer_application, update_full_name)
from presentation import (SUBCATEGORIES, Gallery, ListingCard, booked_dates, filter_by_subcategory,
                          gallery, listing_card, month_days)
from remote.client import Identity, RemoteError, SupabaseClient
from remote.mock import MOCK_LISTINGS, MemoryClient, MockCheckout
from remote.payments import PaystackCheckout
from remote.realtime import ChangeEvent, ChangeFeed
from resources.base import mounted
from resources.bookings import BookingsHook
from resources.custom_requests import CustomRequestsHook
from resources.listings import ListingHook, ListingsHook
from resources.profile import ProfileHook
from schemas import Booking, CustomRequest, Listing, Profile, VolunteerApplication

settings = load_settings()
logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("app")

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
FEATURED_COUNT = 6


def build_backend(feed: ChangeFeed):
    if settings.use_memory_backend:
        logger.warning("SUPABASE_URL / SUPABASE_ANON_KEY not set; using in-memory backend with sample listings")
        client = MemoryClient(feed=feed)
        client.seed("listings", MOCK_LISTINGS)
        return client
    return SupabaseClient(settings.supabase_url, settings.supabase_anon_key, feed=feed,
                          timeout=settings.request_timeout)


def build_checkout():
    if not settings.paystack_secret_key:
        logger.warning("PAYSTACK_SECRET_KEY not set; checkouts are simulated")
        return MockCheckout()
    return PaystackCheckout(settings.paystack_secret_key, timeout=settings.request_timeout)


def build_settlement(client):
    if settings.use_memory_backend:
        return client.service()
    if not settings.supabase_service_key:
        logger.warning("SUPABASE_SERVICE_ROLE_KEY not set; payments cannot be settled")
        return None
    return client.service(settings.supabase_service_key)


feed = ChangeFeed()
backend = build_backend(feed)
checkout = build_checkout()
settlement = build_settlement(backend)
featured = ListingsHook(backend)


@asynccontextmanager
async def lifespan(app: FastAPI):
    featured.mount()
    logger.info("Featured listings loaded (%d)", len(featured.data))
    yield
    featured.unmount()


app = FastAPI(title="Safari Bookings", version="0.1.0", lifespan=lifespan)

# Allow the browser front-end (different origin) to call the API directly:
# set CORS_ORIGIN to the site URL, e.g. https://your-site.com
if settings.cors_origin:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.cors_origin],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

templates = Jinja2Templates(directory=os.path.join(BASE_DIR, "templates"))
app.mount("/static", StaticFiles(directory=os.path.join(BASE_DIR, "static")), name="static")


# ---------- request / response models ----------
class SignUpRequest(BaseModel):
    email: EmailStr
    password: str = Field(..., min_length=6)
    full_name: str = ""


class SignInRequest(BaseModel):
    email: EmailStr
    password: str


class SessionResponse(BaseModel):
    access_token: str
    user: Identity


class ListingsResponse(BaseModel):
    category: Optional[str]
    search: str
    subcategory: str
    subcategories: List[str]
    items: List[ListingCard]


class ListingDetail(BaseModel):
    listing: Listing
    gallery: Gallery
    booked_dates: List[str]
    calendar: Optional[List[Dict]] = None


class BookingResponse(BaseModel):
    booking: Booking
    amount_due: float
    reference: str
    checkout_url: Optional[str] = None


class PaymentConfirmation(BaseModel):
    reference: str


class PaymentResult(BaseModel):
    booking_id: str
    payment_status: str
    redirect: str = "/bookings"


class Dashboard(BaseModel):
    profile: Optional[Profile]
    bookings: List[Booking]
    custom_requests: List[CustomRequest]
    errors: Dict[str, str] = Field(default_factory=dict)


# ---------- dependencies ----------
def get_backend():
    return backend


def get_checkout():
    return checkout


def get_settlement():
    return settlement


def get_auth(authorization: Optional[str] = Header(None), client=Depends(get_backend)) -> AuthContext:
    token = None
    if authorization and authorization.lower().startswith("bearer "):
        token = authorization.split(" ", 1)[1].strip()
    auth = AuthContext(client.scoped(None))
    auth.restore(token)
    return auth


def require_identity(auth: AuthContext = Depends(get_auth)) -> AuthContext:
    if auth.identity is None:
        raise HTTPException(status_code=401, detail="Please sign in to continue.")
    return auth


# ---------- error mapping ----------
@app.exception_handler(RemoteError)
def remote_error(request: Request, exc: RemoteError):
    return JSONResponse(status_code=400, content={"detail": exc.message})


@app.exception_handler(SignInRequired)
def sign_in_required(request: Request, exc: SignInRequired):
    return JSONResponse(status_code=401, content={"detail": str(exc), "redirect": exc.redirect})


@app.exception_handler(BookingError)
@app.exception_handler(FormError)
@app.exception_handler(AuthError)
def validation_error(request: Request, exc: Exception):
    return JSONResponse(status_code=400, content={"detail": str(exc)})


# ---------- pages ----------
@app.get("/", response_class=HTMLResponse)
def home(request: Request):
    if featured.state == "idle":
        featured.fetch()
    cards = [listing_card(backend, l, bucket=settings.storage_bucket) for l in featured.data[:FEATURED_COUNT]]
    return templates.TemplateResponse(request, "index.html", {"cards": cards, "error": featured.error})


@app.get("/privacy", response_class=HTMLResponse)
def privacy(request: Request):
    return templates.TemplateResponse(request, "legal.html", {"page": "privacy"})


@app.get("/terms", response_class=HTMLResponse)
def terms(request: Request):
    return templates.TemplateResponse(request, "legal.html", {"page": "terms"})


# ---------- listings ----------
@app.get("/api/listings", response_model=ListingsResponse)
def api_listings(category: Optional[str] = None, q: str = "", subcategory: str = Query("All", alias="type"),
                 client=Depends(get_backend)):
    with mounted(ListingsHook(client, category=category, search=q.strip())) as hook:
        pass
    if hook.error:
        raise HTTPException(status_code=400, detail=hook.error)
    items = filter_by_subcategory(hook.data, subcategory)
    return ListingsResponse(
        category=category,
        search=q.strip(),
        subcategory=subcategory,
        subcategories=SUBCATEGORIES.get((category or "").lower(), []),
        items=[listing_card(client, l, bucket=settings.storage_bucket) for l in items],
    )


def load_listing(client, listing_id: str) -> Listing:
    with mounted(ListingHook(client, listing_id)) as hook:
        pass
    if hook.data is None:
        raise HTTPException(status_code=404, detail=hook.error or "Listing not found")
    return hook.data


@app.get("/api/listings/{listing_id}", response_model=ListingDetail)
def api_listing(listing_id: str, month: Optional[str] = None, client=Depends(get_backend)):
    listing = load_listing(client, listing_id)
    calendar = None
    if month:
        try:
            year, mon = (int(x) for x in month.split("-", 1))
            calendar = month_days(year, mon, listing.availability)
        except ValueError:
            raise HTTPException(status_code=400, detail="month must be YYYY-MM")
    return ListingDetail(
        listing=listing,
        gallery=gallery(client, listing.images, bucket=settings.storage_bucket),
        booked_dates=sorted(d.isoformat() for d in booked_dates(listing.availability)),
        calendar=calendar,
    )


@app.post("/api/listings/{listing_id}/applications", response_model=VolunteerApplication)
def api_apply(listing_id: str, payload: VolunteerApplicationForm, auth: AuthContext = Depends(get_auth)):
    if auth.identity is None:
        raise FormError("Please sign in to apply")
    opportunity = load_listing(auth.client, listing_id)
    return submit_volunteer_application(auth.client, auth, opportunity, payload)


# ---------- auth ----------
@app.post("/api/auth/signup")
def api_signup(payload: SignUpRequest, auth: AuthContext = Depends(get_auth)):
    identity = auth.sign_up(payload.email, payload.password, payload.full_name)
    return {
        "ok": True,
        "user_id": identity.id,
        "message": "Signed up successfully! Please check your email to verify your account.",
        "redirect": "/signin",
    }


@app.post("/api/auth/signin", response_model=SessionResponse)
def api_signin(payload: SignInRequest, auth: AuthContext = Depends(get_auth)):
    session = auth.sign_in(payload.email, payload.password)
    return SessionResponse(access_token=session.access_token, user=session.user)


@app.post("/api/auth/signout")
def api_signout(auth: AuthContext = Depends(require_identity)):
    auth.sign_out()
    return {"ok": True}


# ---------- account ----------
@app.get("/api/dashboard", response_model=Dashboard)
def api_dashboard(auth: AuthContext = Depends(require_identity)):
    profile, bookings, requests_ = (ProfileHook(auth.client, auth), BookingsHook(auth.client, auth),
                                    CustomRequestsHook(auth.client, auth))
    errors = {}
    for name, hook in (("profile", profile), ("bookings", bookings), ("custom_requests", requests_)):
        with mounted(hook):
            pass
        if hook.error:
            errors[name] = hook.error
    return Dashboard(profile=profile.data, bookings=bookings.data, custom_requests=requests_.data, errors=errors)


@app.patch("/api/profile", response_model=Profile)
def api_update_profile(payload: ProfileForm, auth: AuthContext = Depends(require_identity)):
    update_full_name(auth.client, auth, payload)
    hook = ProfileHook(auth.client, auth)
    result = hook.refetch()
    if result.error:
        raise HTTPException(status_code=400, detail=result.error)
    return result.data


@app.get("/api/bookings", response_model=List[Booking])
def api_bookings(auth: AuthContext = Depends(get_auth)):
    with mounted(BookingsHook(auth.client, auth)) as hook:
        pass
    if hook.error:
        raise HTTPException(status_code=400, detail=hook.error)
    return hook.data


@app.post("/api/bookings/{listing_id}", response_model=BookingResponse)
def api_book(listing_id: str, payload: BookingForm, auth: AuthContext = Depends(get_auth),
             payments=Depends(get_checkout)):
    listing = load_listing(auth.client, listing_id)
    workflow = BookingWorkflow(auth.client, auth, payments, callback_url=settings.paystack_callback_url)
    result = workflow.submit(listing, payload)
    return BookingResponse(
        booking=result.booking,
        amount_due=amount_due(result.booking.total_amount, payload.payment_plan),
        reference=result.checkout.reference,
        checkout_url=result.checkout.authorization_url,
    )


@app.post("/api/bookings/{booking_id}/payment", response_model=PaymentResult)
def api_confirm_payment(booking_id: str, payload: PaymentConfirmation, auth: AuthContext = Depends(get_auth),
                        payments=Depends(get_checkout), settle=Depends(get_settlement)):
    workflow = BookingWorkflow(auth.client, auth, payments, settlement=settle)
    status = workflow.confirm_payment(booking_id, payload.reference)
    if status is None:
        raise HTTPException(status_code=402, detail="Payment was not completed.")
    return PaymentResult(booking_id=booking_id, payment_status=status)


@app.post("/api/bookings/{booking_id}/payment/cancel", response_model=PaymentResult)
def api_cancel_payment(booking_id: str, auth: AuthContext = Depends(require_identity),
                       payments=Depends(get_checkout)):
    booking = BookingWorkflow(auth.client, auth, payments).cancel_payment(booking_id)
    redirect = f"/book/{booking.listings.category}/{booking.listing_id}" if booking.listings else "/bookings"
    return PaymentResult(booking_id=booking.id, payment_status=booking.payment_status, redirect=redirect)


@app.get("/api/custom-requests", response_model=List[CustomRequest])
def api_custom_requests(auth: AuthContext = Depends(get_auth)):
    with mounted(CustomRequestsHook(auth.client, auth)) as hook:
        pass
    if hook.error:
        raise HTTPException(status_code=400, detail=hook.error)
    return hook.data


@app.post("/api/custom-requests", response_model=CustomRequest)
def api_create_custom_request(payload: CustomRequestForm, auth: AuthContext = Depends(get_auth)):
    return submit_custom_request(auth.client, auth, payload)


# ---------- change notifications ----------
@app.post("/hooks/changes")
def database_webhook(change: ChangeEvent, x_webhook_secret: Optional[str] = Header(None)):
    if settings.webhook_secret and not hmac.compare_digest(x_webhook_secret or "", settings.webhook_secret):
        raise HTTPException(status_code=401, detail="Invalid webhook secret")
    delivered = feed.publish(change)
    return {"ok": True, "delivered": delivered}


@app.get("/health")
def health():
    return {
        "ok": True,
        "version": app.version,
        "backend": "memory" if settings.use_memory_backend else "supabase",
        "channels": feed.channels(),
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.port)
