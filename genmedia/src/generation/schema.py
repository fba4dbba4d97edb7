"""Request and response models for the generation endpoints."""

import math
import random

from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from genmedia.common.exception.errors import BadRequestError
from genmedia.src.billing.tickets.calculator import normalize_seconds

SEED_UPPER_BOUND = 2147483647

# Image limits
IMAGE_MAX_PROMPT_LENGTH = 400
IMAGE_MIN_DIMENSION = 256
IMAGE_MAX_DIMENSION = 2048
IMAGE_MIN_STEPS = 1
IMAGE_MAX_STEPS = 60
MIN_CFG = 0
MAX_CFG = 10

# Video limits
VIDEO_MAX_PROMPT_LENGTH = 500
VIDEO_MIN_DIMENSION = 256
VIDEO_MAX_DIMENSION = 3000
VIDEO_FIXED_STEPS = 4
VIDEO_FIXED_CFG = 1
VIDEO_FIXED_FPS = 8
VIDEO_MAX_LONG_SIDE = 768
VIDEO_DEFAULT_WIDTH = 768
VIDEO_DEFAULT_HEIGHT = 448


def _floor_number(value: Any) -> Any:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and math.isfinite(value):
        return math.floor(value)
    if isinstance(value, str):
        try:
            parsed = float(value)
        except ValueError:
            return value
        return math.floor(parsed) if math.isfinite(parsed) else value
    return value


class GenerateRequestBase(BaseModel):
    model_config = ConfigDict(extra='ignore', populate_by_name=True)

    seed: int = 0
    randomize_seed: bool = False

    def resolved_seed(self) -> int:
        if self.randomize_seed:
            return random.randrange(SEED_UPPER_BOUND)
        return self.seed


class ImageGenerateRequest(GenerateRequestBase):
    prompt: str = Field('', max_length=IMAGE_MAX_PROMPT_LENGTH, validation_alias=AliasChoices('prompt', 'text'))
    negative_prompt: str = Field(
        '', max_length=IMAGE_MAX_PROMPT_LENGTH, validation_alias=AliasChoices('negative_prompt', 'negative')
    )
    steps: int = Field(
        30, ge=IMAGE_MIN_STEPS, le=IMAGE_MAX_STEPS, validation_alias=AliasChoices('steps', 'num_inference_steps')
    )
    cfg: float = Field(4, ge=MIN_CFG, le=MAX_CFG, validation_alias=AliasChoices('cfg', 'guidance_scale'))
    width: int = Field(1024, ge=IMAGE_MIN_DIMENSION, le=IMAGE_MAX_DIMENSION)
    height: int = Field(1024, ge=IMAGE_MIN_DIMENSION, le=IMAGE_MAX_DIMENSION)

    @field_validator('steps', 'width', 'height', 'seed', mode='before')
    @classmethod
    def floor_integers(cls, value: Any) -> Any:
        return _floor_number(value)


class VideoGenerateRequest(GenerateRequestBase):
    mode: Literal['i2v', 't2v'] = 'i2v'
    prompt: str = Field('', max_length=VIDEO_MAX_PROMPT_LENGTH, validation_alias=AliasChoices('prompt', 'text'))
    negative_prompt: str = Field(
        '', max_length=VIDEO_MAX_PROMPT_LENGTH, validation_alias=AliasChoices('negative_prompt', 'negative')
    )
    width: int = Field(VIDEO_DEFAULT_WIDTH, ge=VIDEO_MIN_DIMENSION, le=VIDEO_MAX_DIMENSION)
    height: int = Field(VIDEO_DEFAULT_HEIGHT, ge=VIDEO_MIN_DIMENSION, le=VIDEO_MAX_DIMENSION)
    seconds: int = 5
    image_base64: Optional[str] = None
    image: Optional[str] = None
    image_url: Optional[str] = None
    image_name: str = 'input.png'
    workflow: Any = None

    @field_validator('mode', mode='before')
    @classmethod
    def lower_mode(cls, value: Any) -> Any:
        return str(value).lower() if value is not None else 'i2v'

    @field_validator('width', 'height', 'seed', mode='before')
    @classmethod
    def floor_integers(cls, value: Any) -> Any:
        return _floor_number(value)

    @field_validator('seconds', mode='before')
    @classmethod
    def normalize_clip_seconds(cls, value: Any) -> int:
        return normalize_seconds(value)

    @model_validator(mode='after')
    def check_inputs(self) -> 'VideoGenerateRequest':
        if self.workflow:
            raise ValueError('workflow overrides are not allowed.')
        if self.image_url:
            raise ValueError('image_url is not allowed. Use base64.')
        if self.mode == 'i2v' and not self.image_value:
            raise ValueError('i2v requires an image.')
        return self

    @property
    def image_value(self) -> Optional[str]:
        return self.image_base64 or self.image

    @property
    def num_frames(self) -> int:
        return VIDEO_FIXED_FPS * self.seconds


def parse_generate_request(model: type[BaseModel], body: Any) -> Any:
    """
    Validate a request body, unwrapping an optional ``{"input": {...}}`` envelope.

    Raises:
        BadRequestError: body is not an object or fails validation
    """
    if not isinstance(body, dict):
        raise BadRequestError('Invalid request body.')
    data = body.get('input', body)
    if not isinstance(data, dict):
        raise BadRequestError('Invalid request body.')
    try:
        return model.model_validate(data)
    except ValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        first = errors[0] if errors else {}
        field = '.'.join(str(part) for part in first.get('loc', ()))
        message = first.get('msg', 'Invalid request.')
        if message.startswith('Value error, '):
            message = message[len('Value error, '):]
        raise BadRequestError(f'{field}: {message}' if field else message, details={'errors': errors})
