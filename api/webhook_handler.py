import logging
from typing import Optional, Union

from api.messages import format_record_reply
from api.schema import InboundEvent, parse_webhook_body
from lib.database import RecordStore
from lib.error_handler import AppError, ErrorHandler, PayloadMalformed
from lib.line_client import LineClient
from lib.openai_client import VisionClient

logger = logging.getLogger(__name__)

class WebhookHandler:
    """Runs every event of a LINE webhook body through the record pipeline.

    Image messages go fetch -> extract -> persist -> reply. Each stage returns a
    StageResult; the first failed stage ends the chain with the failure reply.
    Text messages are echoed back. Everything else is logged and ignored.
    """

    def __init__(self, line_client: LineClient, vision_client: VisionClient,
                 record_store: RecordStore, error_handler: Optional[ErrorHandler] = None):
        self.line = line_client
        self.vision = vision_client
        self.records = record_store
        self.error_handler = error_handler or ErrorHandler()

    async def handle_webhook(self, raw_body: Union[str, bytes]) -> int:
        """Process a webhook body and return how many events got a reply"""
        logger.info("start")
        try:
            events = parse_webhook_body(raw_body)
        except PayloadMalformed as e:
            logger.error(f"Error handling LINE webhook: {e.message}")
            return 0

        handled = 0
        for index, event in enumerate(events):
            logger.debug(f"event[{index}]: {event.label} from {event.sender_id}")
            try:
                if await self.handle_event(event):
                    handled += 1
            except Exception as e:
                logger.error(f"Unexpected error in event[{index}]: {str(e)}", exc_info=True)

        logger.info(f"end ({handled}/{len(events)} events handled)")
        return handled

    async def handle_event(self, event: InboundEvent) -> bool:
        """Run the terminal action for one event. False when the event is ignored."""
        if event.kind in ("image", "text") and not event.reply_token:
            # e.g. a channel in standby mode: another bot owns the reply
            logger.info(f"No reply token on {event.label}, skipping")
            return False

        if event.kind == "image":
            await self.handle_image_message(event)
            return True

        if event.kind == "text":
            await self.reply(event.reply_token, event.text)
            return True

        logger.info(f"Unsupported event type: {event.event_type}")
        return False

    async def handle_image_message(self, event: InboundEvent) -> None:
        logger.info("start")
        logger.debug(f"replyToken: *********, attachment: {event.attachment_id}")
        try:
            reply_text = await self.process_running_image(event)
        except Exception as e:
            logger.error(f"Error processing running image: {str(e)}", exc_info=True)
            reply_text = self.error_handler.handle_stage_error(AppError(str(e)))

        await self.reply(event.reply_token, reply_text)
        logger.info("end")

    async def process_running_image(self, event: InboundEvent) -> str:
        """Fetch, extract and store one image. Returns the reply text for the outcome."""
        logger.debug("FETCHING")
        fetched = await self.line.fetch_image(event.attachment_id)
        if not fetched.ok:
            return self.error_handler.handle_stage_error(fetched.error)

        logger.debug("EXTRACTING")
        extracted = await self.vision.extract_running_record(fetched.value)
        if not extracted.ok:
            return self.error_handler.handle_stage_error(extracted.error)

        record = extracted.value.with_user(event.sender_id)

        logger.debug("PERSISTING")
        stored = self.records.append(record)
        if not stored.ok:
            return self.error_handler.handle_stage_error(stored.error)

        logger.info(f"Recorded run for {record.user_id}: {record.distance} km in {record.time}")
        return format_record_reply(record)

    async def reply(self, reply_token: str, text: str) -> bool:
        result = await self.line.reply_text(reply_token, text)
        if not result.ok:
            self.error_handler.handle_reply_error(result.error)
        return result.ok
