"""
FastAPI backend: REST API for status and relationships, live friends over WebSocket.
Run with uvicorn: uvicorn api.main:app --reload
"""

import asyncio
import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from repo root (when run from repo root or from Docker)
for path in (
    Path(__file__).resolve().parent.parent.parent / ".env",
    Path.cwd() / ".env",
):
    if path.exists():
        load_dotenv(path)
        break

from contextlib import asynccontextmanager, suppress
from datetime import datetime

from fastapi import (
    Depends,
    FastAPI,
    Header,
    HTTPException,
    Request,
    WebSocket,
    WebSocketDisconnect,
)
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from avail.application import (
    AccountDeleted,
    AccountDeletionFailed,
    AccountService,
    DocumentStore,
    FriendPresenceFeed,
    IdentityDeletionFailed,
    IdentityError,
    IdentityProvider,
    Invalid,
    PresenceService,
    ProfileCreated,
    RelationshipService,
    StoreError,
    StoreFailure,
)
from avail.domain import FriendPresence, normalize_phone
from avail.infrastructure import (
    FirebaseIdentityProvider,
    FirestoreDocumentStore,
    Settings,
    StaticIdentityProvider,
    firestore_client,
    init_firebase,
)
from avail.infrastructure.config import AUTH_MODE_HEADER

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO",
)
logger = logging.getLogger(__name__)

# Development only (AVAIL_AUTH_MODE=header): caller asserts its own phone number.
PHONE_HEADER = "X-Phone-Number"

# Pending pushes per friends socket. Every message is a full snapshot, so the
# oldest is dropped when a slow client falls behind.
FEED_QUEUE_SIZE = 16


def _get_settings(app: FastAPI) -> Settings:
    if getattr(app.state, "settings", None) is None:
        app.state.settings = Settings.from_env()
    return app.state.settings


def _get_firebase_app(app: FastAPI):
    if getattr(app.state, "firebase_app", None) is None:
        app.state.firebase_app = init_firebase(_get_settings(app))
    return app.state.firebase_app


def _get_store(app: FastAPI) -> DocumentStore:
    if getattr(app.state, "store", None) is None:
        settings = _get_settings(app)
        client = firestore_client(_get_firebase_app(app))
        app.state.store = FirestoreDocumentStore(
            client,
            max_in_query=settings.query_chunk_size,
            max_batch_writes=settings.batch_limit,
        )
    return app.state.store


def _authenticate(
    app: FastAPI, authorization: str | None, phone_header: str | None
) -> IdentityProvider:
    """Resolve the caller. Raises IdentityError when nobody valid is signed in."""
    settings = _get_settings(app)
    if settings.auth_mode == AUTH_MODE_HEADER:
        provider: IdentityProvider = StaticIdentityProvider(phone_header)
    else:
        scheme, _, token = (authorization or "").partition(" ")
        if scheme.lower() != "bearer":
            raise IdentityError("Expected 'Authorization: Bearer <ID token>'.")
        provider = FirebaseIdentityProvider.from_id_token(token, app=_get_firebase_app(app))
    if provider.current_identity() is None:
        raise IdentityError("No verified phone number for this session.")
    return provider


def get_store(request: Request) -> DocumentStore:
    return _get_store(request.app)


def get_identity(
    request: Request,
    authorization: str | None = Header(None),
    x_phone_number: str | None = Header(None, alias=PHONE_HEADER),
) -> IdentityProvider:
    try:
        return _authenticate(request.app, authorization, x_phone_number)
    except IdentityError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e


def get_phone(identity: IdentityProvider = Depends(get_identity)) -> str:
    return identity.current_identity()


def _check(result):
    """Return result, or raise the HTTP error matching a failure DTO."""
    if isinstance(result, Invalid):
        raise HTTPException(status_code=400, detail=result.reason)
    if isinstance(result, StoreFailure):
        raise HTTPException(status_code=503, detail=result.message)
    if isinstance(result, AccountDeletionFailed | IdentityDeletionFailed):
        raise HTTPException(status_code=500, detail=result.message)
    return result


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings = _get_settings(app)
    logger.info("Avail API starting (auth mode: %s)", settings.auth_mode)
    yield
    logger.info("Avail API stopped")


app = FastAPI(title="Avail API", lifespan=lifespan)


# --- REST: health ---


@app.get("/health")
def health():
    return {"status": "ok"}


# --- REST: profile and status ---


class ProfileBody(BaseModel):
    name: str | None = None


class StatusBody(BaseModel):
    available: bool


class ProfileItem(BaseModel):
    phone: str
    name: str
    available: bool
    last_changed: str | None = None


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@app.get("/profile")
def get_profile(phone: str = Depends(get_phone), store: DocumentStore = Depends(get_store)):
    profile = _check(AccountService(store).get_profile(phone))
    if profile is None:
        raise HTTPException(status_code=404, detail="Profile not found")
    return ProfileItem(
        phone=profile.phone,
        name=profile.name,
        available=profile.available,
        last_changed=_iso(profile.last_changed),
    )


@app.post("/profile")
def ensure_profile(
    body: ProfileBody,
    phone: str = Depends(get_phone),
    store: DocumentStore = Depends(get_store),
):
    result = _check(AccountService(store).ensure_profile(phone, body.name))
    if isinstance(result, ProfileCreated):
        return JSONResponse(
            content={"phone": result.phone, "name": result.name, "created": True},
            status_code=201,
        )
    return {"phone": result.phone, "created": False}


@app.patch("/profile")
def rename(
    body: ProfileBody,
    phone: str = Depends(get_phone),
    store: DocumentStore = Depends(get_store),
):
    result = _check(AccountService(store).rename(phone, body.name or ""))
    return {"phone": result.phone, "name": result.name}


@app.get("/status")
def get_status(phone: str = Depends(get_phone), store: DocumentStore = Depends(get_store)):
    result = _check(PresenceService(store).load(phone))
    return {"available": result.available}


@app.put("/status")
def put_status(
    body: StatusBody,
    phone: str = Depends(get_phone),
    store: DocumentStore = Depends(get_store),
):
    result = _check(PresenceService(store).update(phone, body.available))
    return {"available": result.available}


# --- REST: relationships ---


class FriendRequestBody(BaseModel):
    phone: str


class BlockedItem(BaseModel):
    phone: str
    blocked_at: str | None = None


@app.get("/relationships/{other}")
def relationship_state(
    other: str,
    phone: str = Depends(get_phone),
    store: DocumentStore = Depends(get_store),
):
    state = _check(RelationshipService(store).relationship_state(phone, other))
    return {"phone": normalize_phone(other), "state": state.value}


@app.post("/friends/requests")
def send_friend_request(
    body: FriendRequestBody,
    phone: str = Depends(get_phone),
    store: DocumentStore = Depends(get_store),
):
    result = _check(RelationshipService(store).send_friend_request(phone, body.phone))
    return JSONResponse(
        content={"phone": result.target, "changed": result.changed},
        status_code=201 if result.changed else 200,
    )


@app.post("/friends/requests/{requester}/accept")
def accept_friend_request(
    requester: str,
    phone: str = Depends(get_phone),
    store: DocumentStore = Depends(get_store),
):
    result = _check(RelationshipService(store).accept(phone, requester))
    return {"phone": result.friend, "changed": result.changed}


@app.post("/friends/requests/{requester}/decline")
def decline_friend_request(
    requester: str,
    phone: str = Depends(get_phone),
    store: DocumentStore = Depends(get_store),
):
    result = _check(RelationshipService(store).decline(phone, requester))
    return {"phone": result.requester, "changed": result.changed}


@app.delete("/friends/{friend}")
def remove_friend(
    friend: str,
    phone: str = Depends(get_phone),
    store: DocumentStore = Depends(get_store),
):
    result = _check(RelationshipService(store).remove_friend(phone, friend))
    return {"phone": result.friend, "changed": result.changed}


@app.post("/blocked/{other}")
def block(
    other: str,
    phone: str = Depends(get_phone),
    store: DocumentStore = Depends(get_store),
):
    result = _check(RelationshipService(store).block(phone, other))
    return {"phone": result.other, "changed": result.changed}


@app.get("/blocked")
def list_blocked(phone: str = Depends(get_phone), store: DocumentStore = Depends(get_store)):
    records = _check(RelationshipService(store).list_blocked(phone))
    return [BlockedItem(phone=r.blocked, blocked_at=_iso(r.blocked_at)) for r in records]


# --- REST: account ---


@app.delete("/account")
def delete_account(
    request: Request,
    identity: IdentityProvider = Depends(get_identity),
    store: DocumentStore = Depends(get_store),
):
    settings = _get_settings(request.app)
    service = AccountService(store, batch_limit=settings.batch_limit)
    result: AccountDeleted = _check(service.delete_account(identity))
    return {"phone": result.phone, "removed_documents": result.removed_documents}


# --- WebSocket: live friends ---


class FriendPresenceItem(BaseModel):
    phone: str
    name: str
    available: bool
    last_changed: str | None = None


def _presence_message(friends: list[FriendPresence]) -> dict:
    return {
        "type": "friends",
        "friends": [
            FriendPresenceItem(
                phone=f.phone,
                name=f.name,
                available=f.available,
                last_changed=_iso(f.last_changed),
            ).model_dump()
            for f in friends
        ],
    }


def _enqueue(queue: asyncio.Queue, message: dict) -> None:
    """Put message on queue, dropping the oldest pending one when full. Runs on the event loop."""
    if queue.full():
        queue.get_nowait()
    queue.put_nowait(message)


@app.websocket("/ws/friends")
async def friends_feed(websocket: WebSocket):
    """Push the sorted presence of every friend on each change until the client leaves.

    Browsers cannot set headers on a WebSocket, so the ID token (or, in header
    mode, the phone number) may also come as ?token= / ?phone= query parameters.
    """
    app_ = websocket.app
    token = websocket.query_params.get("token")
    authorization = websocket.headers.get("authorization") or (
        f"Bearer {token}" if token else None
    )
    phone_header = websocket.headers.get(PHONE_HEADER) or websocket.query_params.get("phone")
    try:
        # Token verification and Firestore calls block; keep them off the event loop.
        provider = await run_in_threadpool(_authenticate, app_, authorization, phone_header)
    except IdentityError as e:
        logger.info("Rejected friends feed: %s", e)
        await websocket.close(code=1008)
        return
    phone = provider.current_identity()
    await websocket.accept()

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[dict] = asyncio.Queue(maxsize=FEED_QUEUE_SIZE)

    def _dispatch(fn) -> None:
        # Store callbacks arrive on SDK threads; run them on this event loop.
        loop.call_soon_threadsafe(fn)

    feed = FriendPresenceFeed(
        _get_store(app_),
        phone,
        on_change=lambda friends: _enqueue(queue, _presence_message(friends)),
        on_error=lambda error: _enqueue(queue, {"type": "error", "message": str(error)}),
        chunk_size=_get_settings(app_).query_chunk_size,
        dispatch=_dispatch,
    )

    async def _send_updates() -> None:
        while True:
            message = await queue.get()
            await websocket.send_json(message)

    sender = asyncio.create_task(_send_updates())
    try:
        await run_in_threadpool(feed.start)
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Friends feed of %s closed", phone)
    except StoreError as e:
        logger.warning("Friends feed of %s failed: %s", phone, e)
        await websocket.close(code=1011)
    finally:
        await run_in_threadpool(feed.cancel)
        sender.cancel()
        with suppress(asyncio.CancelledError):
            try:
                await sender
            except (WebSocketDisconnect, RuntimeError) as e:
                # The client went away while a push was in flight.
                logger.debug("Friends feed of %s stopped sending: %s", phone, e)
