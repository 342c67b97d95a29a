import asyncio
import json
import logging
import re
from typing import Any, Dict, Union

from openai import OpenAI, OpenAIError
from pydantic import ValidationError

from api.schema import RUNNING_RECORD_SCHEMA, ImageContent, RunningRecord
from lib.error_handler import ExtractionFailed
from lib.result import StageResult

logger = logging.getLogger(__name__)

EXTRACTION_PROMPT = (
    "This is a screenshot of a running app's activity summary. "
    "Extract the date and time of the run (YYYY-MM-DD HH:MM), the distance in km, "
    "the elapsed time (HH:MM:SS) and the average pace per km (MM:SS). "
    "Copy values as shown; use null for a pace that is not shown."
)

_JSON_FENCE = re.compile(r"```json\s*\n(.*?)\n\s*```", re.DOTALL)

def parse_model_content(content: str) -> RunningRecord:
    """Turn the model's answer into a RunningRecord.

    The answer may be bare JSON or JSON inside a ```json fenced block.
    Raises ExtractionFailed for anything else.
    """
    if not content or not content.strip():
        raise ExtractionFailed("Model returned empty content")

    match = _JSON_FENCE.search(content)
    payload = match.group(1) if match else content

    try:
        data = json.loads(payload)
    except ValueError as e:
        raise ExtractionFailed(f"Model content is not JSON: {str(e)}")

    if not isinstance(data, dict):
        raise ExtractionFailed(f"Model content is not a JSON object: {type(data).__name__}")

    try:
        return RunningRecord.model_validate(data)
    except ValidationError as e:
        missing = [".".join(str(p) for p in err["loc"]) for err in e.errors()]
        raise ExtractionFailed(f"Model content failed validation: {', '.join(missing)}")

class VisionClient:
    def __init__(self, openai_client: OpenAI, model: str = "gpt-4o", max_completion_tokens: int = 2048):
        self.client = openai_client
        self.model = model
        self.max_completion_tokens = max_completion_tokens
        logger.info(f"Vision client initialized with model: {model}")

    def build_request(self, image: ImageContent) -> Dict[str, Any]:
        return {
            "model": self.model,
            "messages": [
                {
                    "role": "user",
                    "content": [
                        {
                            "type": "image_url",
                            "image_url": {"url": image.to_data_uri()},
                        },
                        {
                            "type": "text",
                            "text": EXTRACTION_PROMPT,
                        },
                    ],
                }
            ],
            "response_format": {
                "type": "json_schema",
                "json_schema": {
                    "name": "RunningRecord",
                    "strict": True,
                    "schema": RUNNING_RECORD_SCHEMA,
                },
            },
            "temperature": 1,
            "max_completion_tokens": self.max_completion_tokens,
            "top_p": 1,
            "frequency_penalty": 0,
            "presence_penalty": 0,
        }

    async def extract_running_record(self, image: Union[ImageContent, bytes]) -> StageResult[RunningRecord]:
        """Ask the model to read a running summary screenshot"""
        logger.info("start")
        if isinstance(image, (bytes, bytearray)):
            image = ImageContent(data=bytes(image))

        try:
            request = self.build_request(image)
            # Run the blocking OpenAI call in an executor to keep the event loop free
            loop = asyncio.get_event_loop()
            response = await loop.run_in_executor(
                None,
                lambda: self.client.chat.completions.create(**request)
            )
        except OpenAIError as e:
            logger.error(f"OpenAI request failed: {type(e).__name__}: {str(e)}")
            return StageResult.failure(ExtractionFailed(f"OpenAI request failed: {str(e)}"))

        logger.debug(f"body {_dump_response(response)}")

        try:
            if not response.choices:
                raise ExtractionFailed("Model returned no choices")
            message = response.choices[0].message
            if message.content is None:
                refusal = getattr(message, "refusal", None)
                raise ExtractionFailed(f"Model returned no content (refusal: {refusal})")
            record = parse_model_content(message.content)
        except ExtractionFailed as e:
            logger.error(f"Could not parse model answer: {e.message}")
            return StageResult.failure(e)

        logger.debug(f"result {record.model_dump_json(by_alias=True)}")
        logger.info("end")
        return StageResult.success(record)

def _dump_response(response: Any) -> str:
    if hasattr(response, "model_dump_json"):
        return response.model_dump_json(indent=2)
    return repr(response)
