"""
HTTP Surface Tests

In-process ASGI client against a context wired with fake collaborators.
KEY ASSERTION: admission runs before idempotency, idempotency before validation.
"""

import asyncio

import httpx
import pytest
import pytest_asyncio
from starlette.datastructures import UploadFile

from api.resilience import IdempotencyCache, RateLimiter
from conftest import SELF_JID, open_session, settle
from infra.bootstrap import ServiceContext
from main import create_app
from services.tts import NoOpTTSBackend, StubTTSBackend
from transport.whatsapp.content import AudioContent, ContactContent, DocumentContent, ImageContent, TextContent
from transport.whatsapp.dispatcher import Dispatcher
from transport.whatsapp.schemas import LoginBody
from transport.whatsapp.session import LifecyclePhase, SessionManager


DEST = "5511988887777"
DEST_JID = f"{DEST}@s.whatsapp.net"


class FakeClock:
    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


async def no_sleep(delay):
    return None


def build_context(
    auth_store,
    transport_factory,
    api_token="",
    rate_limit_max=1000,
    tts_backend=None,
    clock=None,
    media_max_bytes=1024,
):
    session = SessionManager(auth_store, transport_factory, collaborator_timeout_s=1.0)
    dispatcher = Dispatcher(session, tts_backend or StubTTSBackend(), sleep=no_sleep)
    return ServiceContext(
        session=session,
        dispatcher=dispatcher,
        idempotency=IdempotencyCache(clock=clock) if clock else IdempotencyCache(),
        rate_limiter=RateLimiter(window_ms=1000, max_requests=rate_limit_max),
        api_token=api_token,
        dash_user="admin",
        dash_pass="admin123",
        media_max_bytes=media_max_bytes,
    )


def client_for(context) -> httpx.AsyncClient:
    app = create_app(context)
    return httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")


@pytest_asyncio.fixture
async def context(auth_store, transport_factory):
    ctx = build_context(auth_store, transport_factory)
    yield ctx
    await ctx.aclose()


@pytest_asyncio.fixture
async def client(context):
    async with client_for(context) as c:
        yield c


@pytest_asyncio.fixture
async def transport(context, transport_factory):
    return await open_session(context.session, transport_factory)


class TestAccess:
    """Token guard and dashboard login."""

    @pytest.mark.asyncio
    async def test_token_required_when_configured(self, auth_store, transport_factory):
        ctx = build_context(auth_store, transport_factory, api_token="s3cret")
        async with client_for(ctx) as c:
            missing = await c.get("/api/status")
            wrong = await c.get("/api/status", headers={"x-api-token": "nope"})
            header = await c.get("/api/status", headers={"x-api-token": "s3cret"})
            bearer = await c.get("/api/status", headers={"Authorization": "Bearer s3cret"})

        assert missing.status_code == 401
        assert missing.json() == {"error": "Invalid or missing token."}
        assert wrong.status_code == 401
        assert header.status_code == 200
        assert bearer.status_code == 200

    @pytest.mark.asyncio
    async def test_send_surface_guarded(self, auth_store, transport_factory):
        ctx = build_context(auth_store, transport_factory, api_token="s3cret")
        async with client_for(ctx) as c:
            response = await c.post("/api/send/text", json={"to": DEST, "message": "oi"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_open_access_without_token(self, client):
        response = await client.get("/api/status")

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_login_success(self, auth_store, transport_factory):
        ctx = build_context(auth_store, transport_factory, api_token="s3cret")
        async with client_for(ctx) as c:
            response = await c.post("/login", json={"user": "admin", "pass": "admin123"})

        assert response.status_code == 200
        assert response.json() == {"token": "s3cret", "user": "admin"}

    @pytest.mark.asyncio
    async def test_login_failure(self, client):
        response = await client.post("/login", json={"user": "admin", "pass": "wrong"})

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid credentials."}

    def test_login_body_accepts_alias_and_field_name(self):
        assert LoginBody.model_validate({"user": "admin", "pass": "x"}).pass_ == "x"
        assert LoginBody(user="admin", pass_="x").pass_ == "x"


class TestSessionRoutes:
    """Status, QR and lifecycle controls."""

    @pytest.mark.asyncio
    async def test_status_open(self, client, transport):
        response = await client.get("/api/status")

        assert response.json() == {
            "connected": True,
            "qr": None,
            "me": SELF_JID,
            "pushName": "Loja",
        }

    @pytest.mark.asyncio
    async def test_qr_renders_pending_code(self, client, context, transport_factory):
        await context.session.run()
        await settle(context.session)
        transport_factory.latest.emit(qr="2@abc,def")
        await settle(context.session)

        body = (await client.get("/api/qr")).json()

        assert body["connected"] is False
        assert body["qr"] == "2@abc,def"
        assert body["qrImage"].startswith("data:image/svg+xml;base64,")
        assert body["me"] is None

    @pytest.mark.asyncio
    async def test_qr_without_code(self, client, transport):
        body = (await client.get("/api/qr")).json()

        assert body["qr"] is None
        assert body["qrImage"] is None
        assert body["connected"] is True

    @pytest.mark.asyncio
    async def test_new_qr_resets_session(self, client, context, auth_store, transport_factory, transport):
        response = await client.post("/api/qr/new")
        await settle(context.session)

        assert response.json() == {"success": True}
        assert auth_store.wipes == 1
        assert len(transport_factory.created) == 2

    @pytest.mark.asyncio
    async def test_clear_cache(self, client, context, auth_store, transport_factory, transport):
        response = await client.post("/api/clear-cache")
        await settle(context.session)

        assert response.json() == {"success": True}
        assert auth_store.wipes == 1
        assert len(transport_factory.created) == 1

    @pytest.mark.asyncio
    async def test_disconnect(self, client, context, auth_store, transport):
        response = await client.post("/api/disconnect")

        assert response.json() == {"success": True}
        assert transport.logged_out
        assert context.session.phase is LifecyclePhase.IDLE

    @pytest.mark.asyncio
    async def test_check_number(self, client, transport):
        transport.registered.add(DEST_JID)

        response = await client.post("/api/check-number", json={"to": DEST})

        assert response.json() == {"exists": True, "jid": DEST_JID}

    @pytest.mark.asyncio
    async def test_check_number_requires_to(self, client, transport):
        response = await client.post("/api/check-number", json={})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_check_number_not_ready(self, client):
        response = await client.post("/api/check-number", json={"to": DEST})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to check number."}


class TestSendRoutes:
    """Outbound sends."""

    @pytest.mark.asyncio
    async def test_send_text(self, client, transport):
        response = await client.post("/api/send/text", json={"to": DEST, "message": "oi"})

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "key": {"remoteJid": DEST_JID, "fromMe": True, "id": "MSG1"},
        }
        assert transport.sent == [(DEST_JID, TextContent(text="oi"))]

    @pytest.mark.asyncio
    async def test_send_text_missing_fields(self, client, transport):
        response = await client.post("/api/send/text", json={"to": DEST})

        assert response.status_code == 400
        assert response.json() == {"error": "Fields 'to' and 'message' are required."}
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_send_text_not_ready(self, client):
        response = await client.post("/api/send/text", json={"to": DEST, "message": "oi"})

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to send text message."}

    @pytest.mark.asyncio
    async def test_send_contact(self, client, transport):
        response = await client.post(
            "/api/send/contact", json={"to": DEST, "name": "Fulano", "phone": "5511977776666"}
        )

        assert response.json()["success"] is True
        content = transport.sent[0][1]
        assert isinstance(content, ContactContent)
        assert content.display_name == "Fulano"

    @pytest.mark.asyncio
    async def test_send_contact_missing_fields(self, client, transport):
        response = await client.post("/api/send/contact", json={"to": DEST, "name": "Fulano"})

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_send_media_kind_from_mimetype(self, client, transport):
        response = await client.post(
            "/api/send/media",
            data={"to": DEST, "caption": "Olha"},
            files={"file": ("foto.jpg", b"\xff\xd8jpeg", "image/jpeg")},
        )

        assert response.status_code == 200
        assert transport.sent[0][1] == ImageContent(data=b"\xff\xd8jpeg", caption="Olha", mimetype="image/jpeg")

    @pytest.mark.asyncio
    async def test_send_media_explicit_kind(self, client, transport):
        await client.post(
            "/api/send/media",
            data={"to": DEST, "kind": "document"},
            files={"file": ("nota.pdf", b"%PDF", "application/pdf")},
        )

        assert transport.sent[0][1] == DocumentContent(data=b"%PDF", mimetype="application/pdf", filename="nota.pdf")

    @pytest.mark.asyncio
    async def test_send_media_requires_file(self, client, transport):
        response = await client.post("/api/send/media", data={"to": DEST})

        assert response.status_code == 400
        assert response.json() == {"error": "Fields 'to' and file 'file' are required."}

    @pytest.mark.asyncio
    async def test_send_media_too_large(self, client, transport):
        response = await client.post(
            "/api/send/media",
            data={"to": DEST},
            files={"file": ("big.bin", b"x" * 2048, "application/octet-stream")},
        )

        assert response.status_code == 413
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_send_media_at_cap_accepted(self, client, transport):
        response = await client.post(
            "/api/send/media",
            data={"to": DEST},
            files={"file": ("cap.bin", b"x" * 1024, "application/octet-stream")},
        )

        assert response.status_code == 200
        assert transport.sent[0][1].data == b"x" * 1024

    @pytest.mark.asyncio
    async def test_send_media_read_bounded_by_cap(self, client, transport, monkeypatch):
        sizes = []
        original_read = UploadFile.read

        async def recording_read(self, size=-1):
            sizes.append(size)
            return await original_read(self, size)

        monkeypatch.setattr(UploadFile, "read", recording_read)

        response = await client.post(
            "/api/send/media",
            data={"to": DEST},
            files={"file": ("big.bin", b"x" * 4096, "application/octet-stream")},
        )

        assert response.status_code == 413
        assert response.json() == {"error": "File exceeds the 1024 byte limit."}
        assert sizes == [1025]

    @pytest.mark.asyncio
    async def test_send_narration(self, client, transport):
        response = await client.post("/api/send/narration", json={"to": DEST, "text": "Pedido saiu"})

        assert response.json()["success"] is True
        content = transport.sent[0][1]
        assert isinstance(content, AudioContent)
        assert content.mimetype == "audio/mpeg"

    @pytest.mark.asyncio
    async def test_send_narration_failure_detail(self, auth_store, transport_factory):
        ctx = build_context(auth_store, transport_factory, tts_backend=NoOpTTSBackend())
        await open_session(ctx.session, transport_factory)
        async with client_for(ctx) as c:
            response = await c.post("/api/send/narration", json={"to": DEST, "text": "oi"})
        await ctx.aclose()

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to send narrated audio.", "detail": "TTS disabled"}


class TestIdempotency:
    """Replays of text and narration sends."""

    @pytest.mark.asyncio
    async def test_header_key_replays_first_response(self, client, transport):
        headers = {"idempotency-key": "order-42"}
        first = await client.post("/api/send/text", json={"to": DEST, "message": "oi"}, headers=headers)
        second = await client.post("/api/send/text", json={"to": DEST, "message": "oi"}, headers=headers)

        assert second.status_code == first.status_code
        assert second.content == first.content
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_body_key_replays(self, client, transport):
        body = {"to": DEST, "text": "oi", "clientMessageId": "narr-1"}
        await client.post("/api/send/narration", json=body)
        await client.post("/api/send/narration", json=body)

        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_header_takes_precedence_over_body(self, client, transport):
        await client.post(
            "/api/send/text",
            json={"to": DEST, "message": "oi", "clientMessageId": "body-key"},
            headers={"idempotency-key": "header-key"},
        )
        await client.post("/api/send/text", json={"to": DEST, "message": "oi", "clientMessageId": "body-key"})

        assert len(transport.sent) == 2

    @pytest.mark.asyncio
    async def test_failure_response_is_replayed(self, client, context, transport_factory):
        first = await client.post(
            "/api/send/text", json={"to": DEST, "message": "oi"}, headers={"idempotency-key": "k"}
        )
        transport = await open_session(context.session, transport_factory)
        second = await client.post(
            "/api/send/text", json={"to": DEST, "message": "oi"}, headers={"idempotency-key": "k"}
        )

        assert first.status_code == 500
        assert second.status_code == 500
        assert transport.sent == []

    @pytest.mark.asyncio
    async def test_validation_error_not_recorded(self, client, transport):
        headers = {"idempotency-key": "k"}
        invalid = await client.post("/api/send/text", json={"to": DEST}, headers=headers)
        valid = await client.post("/api/send/text", json={"to": DEST, "message": "oi"}, headers=headers)

        assert invalid.status_code == 400
        assert valid.status_code == 200
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_concurrent_duplicate_waits_for_first(self, client, transport):
        transport.send_delay_s = 0.2
        headers = {"idempotency-key": "dup"}

        first, second = await asyncio.gather(
            client.post("/api/send/text", json={"to": DEST, "message": "oi"}, headers=headers),
            client.post("/api/send/text", json={"to": DEST, "message": "oi"}, headers=headers),
        )

        assert len(transport.sent) == 1
        assert first.status_code == second.status_code == 200
        assert first.json() == second.json()

    @pytest.mark.asyncio
    async def test_expired_key_dispatches_again(self, auth_store, transport_factory):
        clock = FakeClock()
        ctx = build_context(auth_store, transport_factory, clock=clock)
        transport = await open_session(ctx.session, transport_factory)
        headers = {"idempotency-key": "k"}
        async with client_for(ctx) as c:
            await c.post("/api/send/text", json={"to": DEST, "message": "oi"}, headers=headers)
            clock.now += 301
            await c.post("/api/send/text", json={"to": DEST, "message": "oi"}, headers=headers)
        await ctx.aclose()

        assert len(transport.sent) == 2


class TestRateLimit:
    """Global admission on /api/send."""

    @pytest.mark.asyncio
    async def test_fourth_request_rejected(self, auth_store, transport_factory):
        ctx = build_context(auth_store, transport_factory, rate_limit_max=3)
        transport = await open_session(ctx.session, transport_factory)
        async with client_for(ctx) as c:
            responses = [
                await c.post("/api/send/text", json={"to": DEST, "message": str(i)}) for i in range(3)
            ]
            # Invalid body: rejected by admission before validation
            fourth = await c.post("/api/send/contact", json={})
            status = await c.get("/api/status")
        await ctx.aclose()

        assert [r.status_code for r in responses] == [200, 200, 200]
        assert fourth.status_code == 429
        assert fourth.json() == {"error": "Too many requests, try again shortly."}
        assert status.status_code == 200
        assert len(transport.sent) == 3

    @pytest.mark.asyncio
    async def test_rejected_request_skips_idempotency(self, auth_store, transport_factory):
        ctx = build_context(auth_store, transport_factory, rate_limit_max=1)
        transport = await open_session(ctx.session, transport_factory)
        async with client_for(ctx) as c:
            await c.post("/api/send/text", json={"to": DEST, "message": "a"})
            rejected = await c.post(
                "/api/send/text", json={"to": DEST, "message": "b"}, headers={"idempotency-key": "k"}
            )
        await ctx.aclose()

        assert rejected.status_code == 429
        assert ctx.idempotency.get("k") is None
        assert len(transport.sent) == 1

    @pytest.mark.asyncio
    async def test_malformed_body_over_limit_rejected(self, auth_store, transport_factory):
        ctx = build_context(auth_store, transport_factory, rate_limit_max=3)
        transport = await open_session(ctx.session, transport_factory)
        async with client_for(ctx) as c:
            for i in range(3):
                await c.post("/api/send/text", json={"to": DEST, "message": str(i)})
            fourth = await c.post(
                "/api/send/text", content=b"{not json", headers={"content-type": "application/json"}
            )
        await ctx.aclose()

        assert fourth.status_code == 429
        assert len(transport.sent) == 3

    @pytest.mark.asyncio
    async def test_malformed_body_under_limit_is_bad_request(self, client, transport):
        response = await client.post(
            "/api/send/text", content=b"{not json", headers={"content-type": "application/json"}
        )

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid request body."}

    @pytest.mark.asyncio
    async def test_token_checked_before_rate_limit(self, auth_store, transport_factory):
        ctx = build_context(auth_store, transport_factory, api_token="s3cret", rate_limit_max=1)
        async with client_for(ctx) as c:
            unauthenticated = await c.post("/api/send/text", json={"to": DEST, "message": "a"})
            admitted = await c.post(
                "/api/send/text", json={"to": DEST, "message": "a"}, headers={"x-api-token": "s3cret"}
            )
        await ctx.aclose()

        assert unauthenticated.status_code == 401
        assert admitted.status_code != 429


class TestHealth:

    @pytest.mark.asyncio
    async def test_live(self, client):
        assert (await client.get("/health/live")).json() == {"status": "alive"}

    @pytest.mark.asyncio
    async def test_ready_reports_phase(self, client, transport):
        assert (await client.get("/health/ready")).json() == {"status": "ready", "session": "open"}

    @pytest.mark.asyncio
    async def test_docs_served(self, client):
        response = await client.get("/api-docs.json")

        assert response.status_code == 200
        assert "/api/send/text" in response.json()["paths"]
