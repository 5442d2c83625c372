import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from telegram.constants import ChatAction

from .catalog import Category, get_model
from .errors import MissingApiKey, MissingModel, UnknownModel, UpstreamError
from .hyperbolic import HyperbolicClient
from .session import Session

logger = logging.getLogger(__name__)

CHAT_ACTIONS = {
    Category.TEXT: ChatAction.TYPING,
    Category.IMAGE: ChatAction.UPLOAD_PHOTO,
    Category.AUDIO: ChatAction.UPLOAD_VOICE,
}


@dataclass(frozen=True)
class TextResult:
    content: str


@dataclass(frozen=True)
class ImageResult:
    image: bytes


@dataclass(frozen=True)
class AudioResult:
    audio: bytes


@dataclass(frozen=True)
class EmptyResult:
    category: Category


InferenceResult = TextResult | ImageResult | AudioResult | EmptyResult


def _decode(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        logger.error(f"Could not decode base64 payload: {e}")
        raise UpstreamError() from e


def _extract(category: Category, result: dict) -> InferenceResult:
    if category == Category.TEXT:
        choices = result.get("choices") or [{}]
        message = choices[0].get("message") or {}
        content = message.get("content")
        if content and not isinstance(content, str):
            raise TypeError(f"message content is {type(content).__name__}")
        return TextResult(content) if content else EmptyResult(category)

    if category == Category.IMAGE:
        images = result.get("images") or [{}]
        image_data = images[0].get("image")
        return ImageResult(_decode(image_data)) if image_data else EmptyResult(category)

    audio_data = result.get("audio")
    return AudioResult(_decode(audio_data)) if audio_data else EmptyResult(category)


def parse_result(category: Category, result: dict) -> InferenceResult:
    if not isinstance(result, dict):
        return EmptyResult(category)
    try:
        return _extract(category, result)
    except (AttributeError, KeyError, IndexError, TypeError) as e:
        logger.error(f"Unexpected {category.value} response shape: {e!r}")
        raise UpstreamError() from e


class RequestDispatcher:
    def __init__(self, client: HyperbolicClient):
        self.client = client

    async def dispatch(
        self,
        session: Session,
        text: str,
        indicate: Callable[[ChatAction], Awaitable] | None = None,
    ) -> InferenceResult:
        """
        Runs one prompt against the session's model.

        Raises MissingApiKey, MissingModel or UnknownModel before any network
        traffic, and InvalidApiKey or UpstreamError when the call fails.
        """
        if not session.api_key:
            raise MissingApiKey()
        if not session.selected_model:
            raise MissingModel()

        model = get_model(session.selected_model)
        if model is None:
            logger.warning(f"User {session.user_id} has unknown model {session.selected_model!r}")
            raise UnknownModel()

        if indicate is not None:
            try:
                await indicate(CHAT_ACTIONS[model.category])
            except Exception as e:
                logger.warning(f"Could not send chat action for user {session.user_id}: {e}")

        logger.info(f"User {session.user_id}: {model.category.value} request with {model.key}")
        result = await self.client.generate(session.api_key, model, text)
        return parse_result(model.category, result)
