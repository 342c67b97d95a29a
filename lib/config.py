from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', extra='ignore')

    # LINE settings
    line_channel_access_token: str = ''
    line_api_url: str = 'https://api.line.me'
    line_content_url: str = 'https://api-data.line.me'

    # OpenAI settings
    openai_api_key: str = ''
    openai_model: str = 'gpt-4o'

    # Supabase settings
    supabase_url: str = ''
    supabase_key: str = ''
    records_table: str = 'running_records'
    log_table: str = 'app_log'

    # Seconds allowed for every outbound call
    request_timeout: float = 20.0

    log_level: str = 'INFO'

    def missing_secrets(self) -> List[str]:
        """Names of the secrets that are not configured"""
        required = {
            'LINE_CHANNEL_ACCESS_TOKEN': self.line_channel_access_token,
            'OPENAI_API_KEY': self.openai_api_key,
            'SUPABASE_URL': self.supabase_url,
            'SUPABASE_KEY': self.supabase_key,
        }
        return [name for name, value in required.items() if not value]

def get_settings() -> Settings:
    return Settings()
