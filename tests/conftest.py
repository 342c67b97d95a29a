import json
import pytest
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

from api.schema import ImageContent, RunningRecord
from lib.config import Settings
from lib.error_handler import ExtractionFailed, FetchFailed, PersistFailed
from lib.result import StageResult

TEST_USER = "U1234567890abcdef"
TEST_REPLY_TOKEN = "reply-token-1"
TEST_IMAGE = b"\xff\xd8\xff\xe0fake-jpeg"

FENCED_ANSWER = (
    '```json\n'
    '{"date":"2024-05-01 07:30","distance":"5.20","time":"00:28:10","pace":"05:25"}\n'
    '```'
)

class FakeQuery:
    def __init__(self, table, row=None, error=None):
        self.table = table
        self.row = row
        self.error = error

    def execute(self):
        if self.error:
            raise self.error
        if self.row is None:
            return SimpleNamespace(data=list(self.table.rows))
        self.table.rows.append(self.row)
        return SimpleNamespace(data=[self.row])

class FakeTable:
    def __init__(self):
        self.rows = []
        self.error = None

    def insert(self, row):
        return FakeQuery(self, row=dict(row), error=self.error)

    def select(self, columns="*"):
        return FakeQuery(self, error=self.error)

class FakeSupabase:
    """In-memory stand-in for the Supabase client's table API"""

    def __init__(self):
        self.tables = {}

    def table(self, name):
        return self.tables.setdefault(name, FakeTable())

def make_event(message_type="image", reply_token=TEST_REPLY_TOKEN, user_id=TEST_USER, **message):
    message.setdefault("id", "100001")
    if message_type == "text":
        message.setdefault("text", "hello")
    event = {
        "type": "message",
        "replyToken": reply_token,
        "source": {"type": "user", "userId": user_id},
        "message": {"type": message_type, **message},
    }
    if user_id is None:
        del event["source"]
    return event

def make_body(*events):
    return json.dumps({"destination": "Uxxxxxxxx", "events": list(events)})

def make_completion(content):
    message = SimpleNamespace(content=content, refusal=None)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])

class MockResponse:
    """Async context manager returned in place of an aiohttp request"""

    def __init__(self, status=200, body=b"", headers=None, text=""):
        self.status = status
        self.headers = headers or {}
        self.read = AsyncMock(return_value=body)
        self.text = AsyncMock(return_value=text)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        pass

@pytest.fixture
def settings():
    return Settings(
        line_channel_access_token="line-token",
        openai_api_key="sk-test",
        supabase_url="https://example.supabase.co",
        supabase_key="supabase-key",
    )

@pytest.fixture
def fake_supabase():
    return FakeSupabase()

@pytest.fixture
def sample_record():
    return RunningRecord(date="2024-05-01 07:30", distance="5.20", time="00:28:10", pace="05:25")

@pytest.fixture
def calls():
    """Order in which the pipeline stages were called"""
    return []

@pytest.fixture
def mock_line_client(calls):
    client = MagicMock()

    async def fetch_image(message_id):
        calls.append(("fetch", message_id))
        return StageResult.success(ImageContent(data=TEST_IMAGE))

    async def reply_text(reply_token, text):
        calls.append(("reply", reply_token, text))
        return StageResult.success()

    client.fetch_image = AsyncMock(side_effect=fetch_image)
    client.reply_text = AsyncMock(side_effect=reply_text)
    return client

@pytest.fixture
def mock_vision_client(calls, sample_record):
    client = MagicMock()

    async def extract(image):
        calls.append(("extract", image.data))
        return StageResult.success(sample_record)

    client.extract_running_record = AsyncMock(side_effect=extract)
    return client

@pytest.fixture
def mock_record_store(calls):
    store = MagicMock()

    def append(record):
        calls.append(("append", record))
        return StageResult.success(dict(zip(("date", "distance", "time", "pace", "user_id"), record.as_row())))

    store.append = MagicMock(side_effect=append)
    return store

def fail(error_type, message="boom"):
    return StageResult.failure(error_type(message))

FAILURES = {
    "fetch": lambda: fail(FetchFailed),
    "extract": lambda: fail(ExtractionFailed),
    "persist": lambda: fail(PersistFailed),
}
