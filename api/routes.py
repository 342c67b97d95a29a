from flask import Flask, request, jsonify
import logging
from typing import Optional

from openai import OpenAI

from api.webhook_handler import WebhookHandler
from lib.config import Settings, get_settings
from lib.database import RecordStore, create_supabase_client
from lib.diagnostics import configure_logging
from lib.line_client import LineClient
from lib.openai_client import VisionClient

logger = logging.getLogger(__name__)

def build_webhook_handler(settings: Settings, supabase_client) -> WebhookHandler:
    """Wire the pipeline clients from one Settings instance"""
    logger.info("Initializing LINE client...")
    line_client = LineClient(
        channel_access_token=settings.line_channel_access_token,
        api_url=settings.line_api_url,
        content_url=settings.line_content_url,
        timeout=settings.request_timeout
    )

    logger.info("Initializing OpenAI client...")
    vision_client = VisionClient(
        OpenAI(api_key=settings.openai_api_key, timeout=settings.request_timeout, max_retries=0),
        model=settings.openai_model
    )

    record_store = RecordStore(supabase_client, table=settings.records_table)

    logger.info("All services initialized successfully")
    return WebhookHandler(line_client, vision_client, record_store)

def create_app(settings: Optional[Settings] = None, webhook_handler: Optional[WebhookHandler] = None) -> Flask:
    settings = settings or get_settings()

    missing = settings.missing_secrets()

    if webhook_handler is None:
        supabase = None
        if 'SUPABASE_URL' in missing or 'SUPABASE_KEY' in missing:
            configure_logging(settings)
        else:
            logger.info("Initializing Supabase client...")
            try:
                supabase = create_supabase_client(settings)
            except Exception as e:
                logger.error(f"Error initializing Supabase client: {str(e)}")
                raise
            configure_logging(settings, supabase)
        webhook_handler = build_webhook_handler(settings, supabase)
    else:
        configure_logging(settings)

    if missing:
        logger.error(f"Missing settings: {', '.join(missing)}")

    app = Flask(__name__)

    @app.route("/webhook", methods=['POST'])
    async def webhook():
        logger.info("Webhook received")
        try:
            processed = await webhook_handler.handle_webhook(request.get_data())
        except Exception as e:
            logger.error(f"Webhook error: {str(e)}", exc_info=True)
            return jsonify({'status': 'error'}), 500

        return jsonify({'status': 'ok', 'processed': processed})

    @app.route('/', methods=['GET'])
    def root():
        """Basic health check"""
        return jsonify({
            'status': 'healthy',
            'missing_settings': missing
        })

    return app
