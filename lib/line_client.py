import asyncio
import logging

import aiohttp

from api.schema import DEFAULT_CONTENT_TYPE, ImageContent
from lib.error_handler import FetchFailed, ReplyFailed
from lib.result import StageResult

logger = logging.getLogger(__name__)

class LineClient:
    """LINE Messaging API calls used by the webhook: message content and replies."""

    def __init__(self, channel_access_token: str, api_url: str = "https://api.line.me",
                 content_url: str = "https://api-data.line.me", timeout: float = 20.0):
        self.channel_access_token = channel_access_token
        self.api_url = api_url.rstrip("/")
        self.content_url = content_url.rstrip("/")
        self.timeout = aiohttp.ClientTimeout(total=timeout)
        logger.info(f"LINE client initialized with content host: {self.content_url}")

    @property
    def _auth_headers(self):
        return {"Authorization": f"Bearer {self.channel_access_token}"}

    def content_url_for(self, message_id: str) -> str:
        return f"{self.content_url}/v2/bot/message/{message_id}/content"

    async def fetch_image(self, message_id: str) -> StageResult[ImageContent]:
        """Download the bytes of an image message"""
        url = self.content_url_for(message_id)
        logger.info(f"Downloading image: {url}")

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.get(url, headers=self._auth_headers) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(f"Failed to download image: {response.status} {error_text}")
                        return StageResult.failure(FetchFailed(f"Content endpoint returned {response.status}"))

                    image_data = await response.read()
                    content_type = response.headers.get("Content-Type") or DEFAULT_CONTENT_TYPE
        except asyncio.TimeoutError:
            logger.error(f"Image download timed out after {self.timeout.total}s")
            return StageResult.failure(FetchFailed("Image download timed out"))
        except aiohttp.ClientError as e:
            logger.error(f"Image download error: {str(e)}")
            return StageResult.failure(FetchFailed(f"Image download error: {str(e)}"))

        if not image_data:
            logger.error("Image download returned an empty body")
            return StageResult.failure(FetchFailed("Empty image body"))

        logger.info(f"Image downloaded: {len(image_data)} bytes ({content_type})")
        return StageResult.success(ImageContent(data=image_data, content_type=content_type.split(";")[0].strip()))

    async def reply_text(self, reply_token: str, text: str) -> StageResult[None]:
        """Send one text message with a reply token. Failures are returned, never raised."""
        payload = {
            "replyToken": reply_token,
            "messages": [
                {
                    "type": "text",
                    "text": text,
                }
            ],
        }
        logger.info(f"Sending reply: {text[:20]}...")

        try:
            async with aiohttp.ClientSession(timeout=self.timeout) as session:
                async with session.post(
                    f"{self.api_url}/v2/bot/message/reply",
                    json=payload,
                    headers=self._auth_headers,
                ) as response:
                    if response.status != 200:
                        error_text = await response.text()
                        logger.error(f"Reply endpoint returned {response.status}: {error_text}")
                        return StageResult.failure(ReplyFailed(f"Reply endpoint returned {response.status}"))
        except asyncio.TimeoutError:
            logger.error(f"Reply timed out after {self.timeout.total}s")
            return StageResult.failure(ReplyFailed("Reply timed out"))
        except aiohttp.ClientError as e:
            logger.error(f"Failed to send reply: {str(e)}")
            return StageResult.failure(ReplyFailed(f"Failed to send reply: {str(e)}"))

        logger.info("Reply sent successfully")
        return StageResult.success()
