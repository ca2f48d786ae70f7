"""Shared test fixtures."""

import json
import os
import tempfile
from pathlib import Path

# Set env vars before any warden imports so Settings picks them up
_TMP = Path(tempfile.mkdtemp(prefix="warden-tests-"))
os.environ.setdefault(
    "WARDEN_API_KEYS",
    "test-key-123,agent-key-456:ci-bot:agent,operator-key-789:alice:operator",
)
os.environ.setdefault("WARDEN_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("WARDEN_PERMISSIONS_PATH", str(_TMP / "permissions.json"))
os.environ.setdefault("WARDEN_AUDIT_LOG_PATH", str(_TMP / "audit.jsonl"))
os.environ.setdefault("WARDEN_WATCH_PERMISSIONS", "false")

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from warden.engine.audit import AuditTrail
from warden.engine.confirmation import ConfirmationChannel
from warden.engine.decision_cache import DecisionCache
from warden.engine.defaults import DEFAULT_DOCUMENT
from warden.engine.orchestrator import PolicyEngine
from warden.engine.rate_limiter import ToolRateLimiter
from warden.engine.rule_store import RulePolicyStore
from warden.models.audit_log import AuditRecord  # noqa: F401 - register model
from warden.models.base import Base
from warden.schemas.audit import AuditEntry
from warden.schemas.operation import OperationRequest

API_KEY_HEADER = {"X-API-Key": "test-key-123"}
AGENT_KEY_HEADER = {"X-API-Key": "agent-key-456"}
OPERATOR_KEY_HEADER = {"X-API-Key": "operator-key-789"}

# In-memory async SQLite engine for tests
_test_engine = create_async_engine("sqlite+aiosqlite://", echo=False)
_test_session_factory = async_sessionmaker(
    _test_engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture(autouse=True)
async def _setup_db():
    """Create tables before each test, drop after."""
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with _test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


async def _override_get_db():
    async with _test_session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def _override_db_dependency():
    """Override the get_db dependency to use the test database."""
    from warden.db.session import get_db
    from warden.main import app

    app.dependency_overrides[get_db] = _override_get_db
    yield
    app.dependency_overrides.pop(get_db, None)


@pytest.fixture(autouse=True)
def _fresh_app_engine():
    """Give every test the default permissions file and a new engine singleton."""
    from warden.config import settings
    from warden.dependencies import get_confirmation_channel, get_engine

    Path(settings.permissions_path).write_text(json.dumps(DEFAULT_DOCUMENT, indent=2))
    get_engine.cache_clear()
    get_confirmation_channel.cache_clear()
    yield
    get_engine.cache_clear()
    get_confirmation_channel.cache_clear()


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ListSink:
    """Audit sink that keeps entries in memory."""

    def __init__(self) -> None:
        self.entries: list[AuditEntry] = []

    def write(self, entry: AuditEntry) -> None:
        self.entries.append(entry)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def sink() -> ListSink:
    return ListSink()


def make_engine(
    rules: dict | None = None,
    *,
    confirmation: ConfirmationChannel | None = None,
    clock: FakeClock | None = None,
    sink: ListSink | None = None,
    limits: dict[str, int] | None = None,
    path: str | os.PathLike | None = None,
    **kwargs,
) -> PolicyEngine:
    """Helper to build an engine over in-memory rules (or a file when *path* is set)."""
    clock = clock or FakeClock()
    store = RulePolicyStore(path)
    if path is None:
        store.load({"permissions": rules if rules is not None else DEFAULT_DOCUMENT["permissions"]})
    else:
        store.load()
    audit = AuditTrail([sink] if sink is not None else [])
    return PolicyEngine(
        store,
        rate_limiter=ToolRateLimiter(limits=limits, clock=clock),
        cache=DecisionCache(ttl=300.0, max_entries=100, clock=clock),
        audit=audit,
        confirmation=confirmation,
        **kwargs,
    )


@pytest.fixture
def engine(clock: FakeClock, sink: ListSink) -> PolicyEngine:
    return make_engine(clock=clock, sink=sink)


def make_request(tool_name: str = "Bash", parameters: dict | None = None, **kwargs) -> OperationRequest:
    """Helper to create test requests."""
    return OperationRequest(tool_name=tool_name, parameters=parameters or {}, **kwargs)
