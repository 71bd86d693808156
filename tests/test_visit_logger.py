import asyncio
import re

import httpx

from src.config import get_settings
from src.services.background import drain_background_tasks
from src.services.log_sink import (
    ApiLogSink,
    DatabaseLogSink,
    SupabaseLogSink,
    VisitSinkError,
)
from src.services.visit_logger import (
    FALLBACK_IP,
    MemorySessionStorage,
    Route,
    VisitSession,
    build_log_sink,
    build_visit_session,
    create_visit_logger_middleware,
    generate_session_id,
    parse_user_agent,
)

CHROME_WINDOWS = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
EDGE_WINDOWS = CHROME_WINDOWS + " Edg/120.0.0.0"
FIREFOX_LINUX = "Mozilla/5.0 (X11; Linux x86_64; rv:121.0) Gecko/20100101 Firefox/121.0"
SAFARI_MAC = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 14_2) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.2 Safari/605.1.15"
)


class RecordingSink:
    def __init__(self):
        self.records = []

    async def insert(self, record):
        self.records.append(record)


class FailingSink:
    async def insert(self, record):
        raise VisitSinkError("insert rejected")


class BrokenStorage:
    def get_item(self, key):
        raise OSError("storage disabled")

    def set_item(self, key, value):
        raise OSError("quota exceeded")


class FakeRouter:
    def __init__(self):
        self.hooks = []

    def after_each(self, hook):
        self.hooks.append(hook)

    def navigate(self, route, from_route=None):
        return [hook(route, from_route) for hook in self.hooks]


def ip_client(ip="203.0.113.7"):
    def handler(request):
        return httpx.Response(200, json={"ip": ip})
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def failing_client():
    def handler(request):
        raise httpx.ConnectError("lookup unreachable", request=request)
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


# --- parse_user_agent ---

def test_chrome_wins_over_safari():
    info = parse_user_agent(CHROME_WINDOWS)
    assert info == {"device_type": "desktop", "browser": "Chrome", "os": "Windows"}


def test_edge_wins_over_chrome():
    assert parse_user_agent(EDGE_WINDOWS)["browser"] == "Edge"


def test_firefox_and_linux():
    info = parse_user_agent(FIREFOX_LINUX)
    assert info["browser"] == "Firefox"
    assert info["os"] == "Linux"


def test_safari_on_mac():
    info = parse_user_agent(SAFARI_MAC)
    assert info["browser"] == "Safari"
    assert info["os"] == "macOS"


def test_iphone_is_mobile_ios():
    info = parse_user_agent("Mozilla/5.0 (iPhone; CPU iPhone OS 15_0)")
    assert info["device_type"] == "mobile"
    assert info["os"] == "iOS"


def test_ipad_is_tablet():
    assert parse_user_agent("Mozilla/5.0 (iPad; CPU OS 16_0)")["device_type"] == "tablet"


def test_opera_token():
    assert parse_user_agent("Opera/9.80 (Windows NT 6.1)")["browser"] == "Opera"


def test_empty_user_agent():
    assert parse_user_agent("") == {"device_type": "desktop", "browser": "Unknown", "os": "Unknown"}
    assert parse_user_agent(None)["browser"] == "Unknown"


# --- session id ---

def test_session_id_format():
    assert re.fullmatch(r"\d{13}-[0-9a-z]{11}", generate_session_id())


def test_session_id_is_stable_within_a_tab():
    storage = MemorySessionStorage()
    session = VisitSession(RecordingSink(), storage=storage)

    first = session.get_session_id()
    assert all(session.get_session_id() == first for _ in range(10))
    assert storage.get_item("aune_session_id") == first


def test_reload_reuses_stored_session_id():
    storage = MemorySessionStorage()
    first = VisitSession(RecordingSink(), storage=storage).get_session_id()
    reloaded = VisitSession(RecordingSink(), storage=storage).get_session_id()
    assert reloaded == first


def test_independent_tabs_get_different_ids():
    ids = {VisitSession(RecordingSink()).get_session_id() for _ in range(50)}
    assert len(ids) == 50


def test_storage_errors_are_a_cache_miss():
    session = VisitSession(RecordingSink(), storage=BrokenStorage())
    session_id = session.get_session_id()
    assert session_id
    assert session.get_session_id() == session_id


def test_cleared_storage_starts_a_new_session():
    storage = MemorySessionStorage()
    first = VisitSession(RecordingSink(), storage=storage).get_session_id()

    storage.clear()
    assert storage.get_item("aune_session_id") is None

    second = VisitSession(RecordingSink(), storage=storage).get_session_id()
    assert second != first
    assert storage.get_item("aune_session_id") == second


# --- log_visit ---

def test_log_visit_sends_enriched_event():
    sink = RecordingSink()
    session = VisitSession(
        sink,
        user_agent="Mozilla/5.0 (iPhone; CPU iPhone OS 15_0)",
        referrer="https://www.google.com/",
        http_client=ip_client(),
    )

    asyncio.run(session.log_visit("/product/s9-pro?tab=specs"))

    assert len(sink.records) == 1
    record = sink.records[0]
    assert record["ip_address"] == "203.0.113.7"
    assert record["page_url"] == "/product/s9-pro?tab=specs"
    assert record["referer"] == "https://www.google.com/"
    assert record["device_type"] == "mobile"
    assert record["os"] == "iOS"
    assert record["session_id"] == session.get_session_id()
    assert "T" in record["visited_at"]


def test_ip_lookup_failure_uses_fallback():
    sink = RecordingSink()
    session = VisitSession(sink, http_client=failing_client())

    asyncio.run(session.log_visit("/news"))

    assert sink.records[0]["ip_address"] == FALLBACK_IP
    assert sink.records[0]["referer"] is None


def test_log_visit_never_raises_when_everything_fails():
    session = VisitSession(FailingSink(), http_client=failing_client())
    assert asyncio.run(session.log_visit("/downloads")) is None


# --- middleware ---

def test_middleware_logs_public_routes_and_skips_admin():
    sink = RecordingSink()
    session = VisitSession(sink, http_client=ip_client())
    router = FakeRouter()

    async def scenario():
        middleware = create_visit_logger_middleware(router, session, admin_prefix="/admin")
        router.navigate(Route("/news", "/news?page=2"))
        router.navigate(Route("/admin/dashboard"))
        router.navigate(Route("/admin"))
        await drain_background_tasks(timeout=5)
        return middleware

    middleware = asyncio.run(scenario())

    assert [r["page_url"] for r in sink.records] == ["/news?page=2"]
    assert middleware.visited == {"/news?page=2"}


def test_middleware_does_not_deduplicate():
    sink = RecordingSink()
    session = VisitSession(sink, http_client=ip_client())
    router = FakeRouter()

    async def scenario():
        create_visit_logger_middleware(router, session, admin_prefix="/admin")
        for _ in range(3):
            router.navigate(Route("/"))
        await drain_background_tasks(timeout=5)

    asyncio.run(scenario())

    assert len(sink.records) == 3
    assert len({r["session_id"] for r in sink.records}) == 1


def test_middleware_uses_configured_admin_prefix(monkeypatch):
    monkeypatch.setenv("ADMIN_ROUTE_PREFIX", "/manage")
    session = VisitSession(RecordingSink())
    middleware = create_visit_logger_middleware(FakeRouter(), session)
    assert middleware.admin_prefix == "/manage"


def test_track_without_event_loop_does_not_block():
    sink = RecordingSink()
    session = VisitSession(sink)

    async def fake_ip():
        return "198.51.100.1"

    session.get_client_ip = fake_ip
    handle = session.track("/support")
    handle.join(timeout=5)

    assert sink.records[0]["page_url"] == "/support"
    assert sink.records[0]["ip_address"] == "198.51.100.1"


def test_track_failure_is_not_unhandled():
    async def scenario():
        loop = asyncio.get_running_loop()
        unhandled = []
        loop.set_exception_handler(lambda loop, context: unhandled.append(context))

        session = VisitSession(FailingSink(), http_client=failing_client())
        task = session.track("/dealers")
        await asyncio.gather(task, return_exceptions=True)
        return task, unhandled

    task, unhandled = asyncio.run(scenario())
    assert task.exception() is None
    assert unhandled == []


# --- sinks ---

def test_supabase_sink_posts_to_rest_table():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["apikey"] = request.headers.get("apikey")
        seen["auth"] = request.headers.get("authorization")
        seen["prefer"] = request.headers.get("prefer")
        return httpx.Response(201)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    sink = SupabaseLogSink("https://demo.supabase.co/", "anon-key", client=client)

    asyncio.run(sink.insert({"page_url": "/"}))

    assert seen["url"] == "https://demo.supabase.co/rest/v1/visit_logs"
    assert seen["apikey"] == "anon-key"
    assert seen["auth"] == "Bearer anon-key"
    assert seen["prefer"] == "return=minimal"


def test_supabase_sink_raises_on_rejection():
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(lambda request: httpx.Response(401, json={"message": "RLS"}))
    )
    sink = SupabaseLogSink("https://demo.supabase.co", "anon-key", client=client)

    try:
        asyncio.run(sink.insert({"page_url": "/"}))
    except VisitSinkError as e:
        assert "401" in str(e)
    else:
        raise AssertionError("VisitSinkError esperado")


def test_api_sink_raises_on_error_status_body():
    client = httpx.AsyncClient(
        transport=httpx.MockTransport(
            lambda request: httpx.Response(200, json={"status": "error", "message": "db down"})
        )
    )
    sink = ApiLogSink("http://localhost:8000/api/visits", client=client)

    try:
        asyncio.run(sink.insert({"page_url": "/"}))
    except VisitSinkError as e:
        assert "db down" in str(e)
    else:
        raise AssertionError("VisitSinkError esperado")


def test_database_sink_inserts_row(db, session_factory):
    from src.models.visit_log import VisitLog

    session = VisitSession(DatabaseLogSink(session_factory), user_agent=SAFARI_MAC)

    async def fake_ip():
        return "192.0.2.10"

    session.get_client_ip = fake_ip
    asyncio.run(session.log_visit("/page/about"))

    rows = db.query(VisitLog).all()
    assert len(rows) == 1
    assert rows[0].page_url == "/page/about"
    assert rows[0].browser == "Safari"
    assert rows[0].ip_address == "192.0.2.10"


def test_build_log_sink_follows_settings(monkeypatch):
    assert isinstance(build_log_sink(get_settings()), DatabaseLogSink)

    monkeypatch.setenv("SUPABASE_URL", "https://demo.supabase.co")
    monkeypatch.setenv("SUPABASE_ANON_KEY", "anon-key")
    assert isinstance(build_log_sink(get_settings()), SupabaseLogSink)

    monkeypatch.setenv("VISIT_SINK_URL", "http://localhost:8000/api/visits")
    assert isinstance(build_log_sink(get_settings()), ApiLogSink)


def test_build_visit_session_wires_settings(monkeypatch):
    monkeypatch.setenv("IP_LOOKUP_URL", "https://ip.example.test/json")
    monkeypatch.setenv("VISIT_SINK_URL", "http://localhost:8000/api/visits")
    storage = MemorySessionStorage()

    session = build_visit_session(
        user_agent=SAFARI_MAC,
        referrer="https://google.com",
        storage=storage,
        settings=get_settings(),
    )

    assert session.ip_lookup_url == "https://ip.example.test/json"
    assert session.storage_key == "aune_session_id"
    assert session.storage is storage
    assert session.user_agent == SAFARI_MAC
    assert session.referrer == "https://google.com"
    assert isinstance(session.sink, ApiLogSink)

    session_id = session.get_session_id()
    assert storage.get_item("aune_session_id") == session_id


def test_build_visit_session_defaults_to_database_sink():
    session = build_visit_session()

    assert isinstance(session.sink, DatabaseLogSink)
    assert session.ip_lookup_url == "https://api.ipify.org?format=json"
    assert isinstance(session.storage, MemorySessionStorage)
