import logging
from typing import Any, Dict, List, Optional

from supabase import Client, ClientOptions, create_client

from api.schema import RECORD_COLUMNS, RunningRecord
from lib.config import Settings
from lib.error_handler import PersistFailed
from lib.result import StageResult

logger = logging.getLogger(__name__)

def create_supabase_client(settings: Settings) -> Client:
    return create_client(
        settings.supabase_url,
        settings.supabase_key,
        options=ClientOptions(postgrest_client_timeout=settings.request_timeout),
    )

class RecordStore:
    """Append-only table of running records, one row per processed screenshot."""

    def __init__(self, supabase_client: Optional[Client], table: str = 'running_records'):
        self.supabase = supabase_client
        self.table = table
        logger.info(f"Record store initialized with table: {table}")

    def append(self, record: RunningRecord) -> StageResult[Dict[str, Any]]:
        if self.supabase is None:
            logger.error("Record store is not configured")
            return StageResult.failure(PersistFailed("Record store is not configured"))

        row = dict(zip(RECORD_COLUMNS, record.as_row()))
        try:
            logger.info(f"Storing record in Supabase: {row}")
            result = self.supabase.table(self.table).insert(row).execute()
            if hasattr(result, 'error') and result.error:
                raise Exception(f"Supabase error: {result.error}")
        except Exception as e:
            logger.error(f"Failed to store record: {str(e)}")
            return StageResult.failure(PersistFailed(f"Failed to store record: {str(e)}"))

        stored = result.data[0] if getattr(result, 'data', None) else row
        return StageResult.success(stored)

    def fetch_all(self) -> List[RunningRecord]:
        """Read every stored record back. Not used by the webhook."""
        if self.supabase is None:
            raise PersistFailed("Record store is not configured")
        result = self.supabase.table(self.table).select(','.join(RECORD_COLUMNS)).execute()
        return [RunningRecord.from_row(row) for row in result.data]
