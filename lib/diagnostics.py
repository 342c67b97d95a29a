"""
Diagnostics sink: application log records appended as rows to a Supabase table.

Columns: timestamp, function, level, message, stack_trace.
Only the application's own loggers (api, lib) feed the table, so the HTTP
logging done by the Supabase client itself never re-enters the handler.
"""

import logging
import sys
import threading
import traceback
from datetime import datetime, timezone
from typing import Optional

from lib.config import Settings

APP_LOGGERS = ("api", "lib")

class SupabaseLogHandler(logging.Handler):
    def __init__(self, supabase_client, table: str = 'app_log', level=logging.NOTSET):
        super().__init__(level)
        self.supabase = supabase_client
        self.table = table
        self._local = threading.local()

    def to_row(self, record: logging.LogRecord) -> dict:
        stack_trace = None
        if record.exc_info:
            stack_trace = ''.join(traceback.format_exception(*record.exc_info))
        return {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'function': record.funcName,
            'level': record.levelname,
            'message': record.getMessage(),
            'stack_trace': stack_trace,
        }

    def emit(self, record: logging.LogRecord) -> None:
        # Writing a row may itself log; drop those nested records
        if getattr(self._local, 'busy', False):
            return
        self._local.busy = True
        try:
            self.supabase.table(self.table).insert(self.to_row(record)).execute()
        except Exception:
            self.handleError(record)
        finally:
            self._local.busy = False

def configure_logging(settings: Settings, supabase_client=None) -> Optional[SupabaseLogHandler]:
    """Console logging for the process, plus the Supabase sink when a client is given"""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stdout,
        force=True
    )

    if supabase_client is None:
        return None

    handler = SupabaseLogHandler(supabase_client, table=settings.log_table, level=level)
    for name in APP_LOGGERS:
        app_logger = logging.getLogger(name)
        for existing in [h for h in app_logger.handlers if isinstance(h, SupabaseLogHandler)]:
            app_logger.removeHandler(existing)
        app_logger.addHandler(handler)
    return handler
