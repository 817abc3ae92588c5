"""Sandbox payment processor built with FastAPI.

A stand-in for the hosted-checkout processor used in development and in
end-to-end runs. It creates checkout sessions, lets a developer drive the
hosted flow (complete, fail, expire) and delivers signed notifications to
the merchant, including byte-for-byte redelivery of an earlier one.

Session creation honours ``Idempotency-Key``: the same key and payload
return the session created first; the same key with a different payload is
refused with 409.
"""

import logging
import os
import time
import uuid
from typing import Annotated, Dict, List, Optional

from fastapi import BackgroundTasks, FastAPI, Header, HTTPException, Request
from pydantic import BaseModel, Field, constr
from pythonjsonlogger import jsonlogger
from sqlalchemy import select, text
from sqlalchemy.exc import IntegrityError, OperationalError

import delivery
from repo import (
    COMPLETE,
    EXPIRED,
    FAILED,
    OPEN,
    CheckoutSession,
    Event,
    EventsRepo,
    canonical_hash,
    engine,
    get_session,
    new_id,
)

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:9002")

app = FastAPI(title="Sandbox Payment Processor")

Currency = constr(pattern=r"^[A-Z]{3}$")

logger = logging.getLogger("processor")
if not logger.handlers:
    h = logging.StreamHandler()
    h.setFormatter(jsonlogger.JsonFormatter("%(asctime)s %(levelname)s %(name)s %(message)s %(request_id)s"))
    logger.addHandler(h)
    logger.setLevel(logging.INFO)
    logging.getLogger("processor.delivery").addHandler(h)
    logging.getLogger("processor.delivery").setLevel(logging.INFO)


@app.on_event("startup")
def _startup_db():
    # wait briefly for the database to accept connections
    deadline = time.time() + 30
    while True:
        try:
            with engine.connect() as conn:
                conn.execute(text("select 1"))
            break
        except OperationalError:
            if time.time() > deadline:
                raise
            time.sleep(1)


class CreateSessionRequest(BaseModel):
    """Request body for opening a checkout session.

    Attributes:
        amount_cents: Positive amount in minor currency units.
        currency: Three-letter ISO currency code.
        success_url: Where the hosted page sends the buyer after paying.
        cancel_url: Where the hosted page sends the buyer after cancelling.
        metadata: Merchant key/values echoed back in every notification.
    """

    amount_cents: int = Field(gt=0)
    currency: Currency
    description: str = Field(default="", max_length=500)
    success_url: str = Field(min_length=1, max_length=2048)
    cancel_url: str = Field(min_length=1, max_length=2048)
    metadata: Dict[str, str] = Field(default_factory=dict)


class SessionResponse(BaseModel):
    id: str
    url: str
    status: str
    amount_cents: int
    currency: str
    metadata: Dict[str, str]


class EventResponse(BaseModel):
    id: str
    type: str
    session_id: str
    attempts: int
    last_status: Optional[int] = None


def _render(cs: CheckoutSession) -> SessionResponse:
    return SessionResponse(
        id=cs.id,
        url=f"{PUBLIC_BASE_URL}/pay/{cs.id}",
        status=cs.status,
        amount_cents=cs.amount_cents,
        currency=cs.currency,
        metadata=dict(cs.session_metadata or {}),
    )


def _request_id(request: Request) -> Optional[str]:
    return getattr(request.state, "request_id", None)


@app.get("/health")
def health():
    """Liveness/health probe endpoint."""
    return {"ok": True}


@app.post("/checkout/sessions", response_model=SessionResponse)
def create_session(
    req: CreateSessionRequest,
    idempotency_key: Annotated[Optional[str], Header(alias="Idempotency-Key")] = None,
):
    """Open a hosted checkout session with optional idempotency.

    Raises:
        HTTPException: 409 ``IDEMPOTENCY_CONFLICT`` when the key was used
            with a different payload.
    """
    payload_hash = canonical_hash(req.model_dump())

    with get_session() as s:
        if idempotency_key:
            existing = s.execute(
                select(CheckoutSession).where(CheckoutSession.idempotency_key == idempotency_key)
            ).scalars().first()
            if existing is not None:
                if existing.request_hash != payload_hash:
                    raise HTTPException(status_code=409, detail="IDEMPOTENCY_CONFLICT")
                return _render(existing)

        cs = CheckoutSession(
            id=new_id("cs_test"),
            status=OPEN,
            amount_cents=req.amount_cents,
            currency=req.currency,
            description=req.description,
            success_url=req.success_url,
            cancel_url=req.cancel_url,
            session_metadata=req.metadata,
            idempotency_key=idempotency_key,
            request_hash=payload_hash,
            created=int(time.time()),
        )
        s.add(cs)
        try:
            s.commit()
        except IntegrityError:
            # concurrent request with the same key won the insert
            s.rollback()
            winner = s.execute(
                select(CheckoutSession).where(CheckoutSession.idempotency_key == idempotency_key)
            ).scalars().first()
            if winner is None:
                raise HTTPException(status_code=500, detail="IDEMPOTENCY_LOOKUP_ERROR")
            if winner.request_hash != payload_hash:
                raise HTTPException(status_code=409, detail="IDEMPOTENCY_CONFLICT")
            return _render(winner)

        logger.info("checkout session created", extra={"session_id": cs.id, "amount_cents": cs.amount_cents})
        return _render(cs)


@app.get("/checkout/sessions/{session_id}", response_model=SessionResponse)
def get_checkout_session(session_id: str):
    with get_session() as s:
        cs = s.get(CheckoutSession, session_id)
        if cs is None:
            raise HTTPException(status_code=404, detail="SESSION_NOT_FOUND")
        return _render(cs)


def _transition(session_id: str, new_status: str, event_type: str, request: Request, tasks: BackgroundTasks):
    """Move an open session to ``new_status`` and queue its notification.

    An already-expired session asked to expire again is a no-op; every other
    transition out of a non-open session is refused with 409.
    """
    with get_session() as s:
        cs = s.get(CheckoutSession, session_id, with_for_update=True)
        if cs is None:
            raise HTTPException(status_code=404, detail="SESSION_NOT_FOUND")
        if cs.status != OPEN:
            if cs.status == new_status == EXPIRED:
                return _render(cs)
            raise HTTPException(status_code=409, detail="SESSION_NOT_OPEN")

        cs.status = new_status
        evt = EventsRepo().create(s, event_type, cs)
        event_id = evt.id
        s.commit()
        logger.info(
            "checkout session transitioned",
            extra={"session_id": session_id, "status": new_status, "event_id": event_id,
                   "request_id": _request_id(request)},
        )
        tasks.add_task(delivery.deliver, event_id, _request_id(request))
        return _render(cs)


@app.post("/checkout/sessions/{session_id}/expire", response_model=SessionResponse)
def expire_session(session_id: str, request: Request, tasks: BackgroundTasks):
    return _transition(session_id, EXPIRED, "checkout.session.expired", request, tasks)


@app.post("/checkout/sessions/{session_id}/complete", response_model=SessionResponse)
def complete_session(session_id: str, request: Request, tasks: BackgroundTasks):
    """Simulate the buyer paying on the hosted page."""
    return _transition(session_id, COMPLETE, "checkout.session.completed", request, tasks)


@app.post("/checkout/sessions/{session_id}/fail", response_model=SessionResponse)
def fail_session(session_id: str, request: Request, tasks: BackgroundTasks):
    """Simulate an asynchronous payment method that was declined."""
    return _transition(session_id, FAILED, "checkout.session.async_payment_failed", request, tasks)


def _render_event(evt: Event) -> EventResponse:
    return EventResponse(
        id=evt.id, type=evt.type, session_id=evt.session_id, attempts=evt.attempts, last_status=evt.last_status
    )


@app.get("/checkout/sessions/{session_id}/events", response_model=List[EventResponse])
def list_session_events(session_id: str):
    """Notifications emitted for a session, oldest first."""
    with get_session() as s:
        if s.get(CheckoutSession, session_id) is None:
            raise HTTPException(status_code=404, detail="SESSION_NOT_FOUND")
    return [_render_event(evt) for evt in EventsRepo().list_for_session(session_id)]


@app.get("/events/{event_id}", response_model=EventResponse)
def get_event(event_id: str):
    evt = EventsRepo().get(event_id)
    if evt is None:
        raise HTTPException(status_code=404, detail="EVENT_NOT_FOUND")
    return _render_event(evt)


@app.post("/events/{event_id}/redeliver", status_code=202)
def redeliver_event(event_id: str, request: Request, tasks: BackgroundTasks):
    """Send a stored notification again, same bytes and event id."""
    if EventsRepo().get(event_id) is None:
        raise HTTPException(status_code=404, detail="EVENT_NOT_FOUND")
    tasks.add_task(delivery.deliver, event_id, _request_id(request))
    return {"queued": True, "event_id": event_id}


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    rid = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    request.state.request_id = rid
    try:
        response = await call_next(request)
    finally:
        logger.info("request handled", extra={"request_id": rid, "path": request.url.path, "method": request.method})
    response.headers["X-Request-ID"] = rid
    return response
