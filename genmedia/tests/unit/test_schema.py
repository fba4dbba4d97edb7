"""Tests for generation request validation."""

import pytest

from genmedia.common.exception.errors import BadRequestError
from genmedia.src.generation.schema import (
    ImageGenerateRequest,
    VideoGenerateRequest,
    parse_generate_request,
)


class TestImageRequest:
    def test_defaults(self):
        params = parse_generate_request(ImageGenerateRequest, {})

        assert params.width == 1024
        assert params.steps == 30
        assert params.cfg == 4

    def test_aliases_and_input_envelope(self):
        params = parse_generate_request(
            ImageGenerateRequest,
            {'input': {'text': 'a cat', 'negative': 'blurry', 'num_inference_steps': 12.7, 'guidance_scale': 6}},
        )

        assert params.prompt == 'a cat'
        assert params.negative_prompt == 'blurry'
        assert params.steps == 12
        assert params.cfg == 6

    @pytest.mark.parametrize('body', [{'width': 100}, {'steps': 61}, {'cfg': 11}, {'prompt': 'x' * 401}])
    def test_out_of_range_values_are_rejected(self, body):
        with pytest.raises(BadRequestError):
            parse_generate_request(ImageGenerateRequest, body)

    def test_error_names_the_field(self):
        with pytest.raises(BadRequestError) as exc_info:
            parse_generate_request(ImageGenerateRequest, {'width': 100})

        assert exc_info.value.message.startswith('width:')

    def test_non_object_body(self):
        with pytest.raises(BadRequestError):
            parse_generate_request(ImageGenerateRequest, ['not', 'an', 'object'])

    def test_randomized_seed_is_in_range(self):
        params = parse_generate_request(ImageGenerateRequest, {'seed': 5, 'randomize_seed': True})

        assert 0 <= params.resolved_seed() < 2147483647


class TestVideoRequest:
    def test_t2v_without_image(self):
        params = parse_generate_request(VideoGenerateRequest, {'mode': 'T2V', 'seconds': 8})

        assert params.mode == 't2v'
        assert params.seconds == 8
        assert params.num_frames == 64

    def test_seconds_are_normalized(self):
        params = parse_generate_request(VideoGenerateRequest, {'mode': 't2v', 'seconds': 7})

        assert params.seconds == 5

    def test_i2v_requires_image(self):
        with pytest.raises(BadRequestError) as exc_info:
            parse_generate_request(VideoGenerateRequest, {'mode': 'i2v'})

        assert 'i2v requires an image.' in exc_info.value.message

    @pytest.mark.parametrize(
        'body',
        [
            {'mode': 't2v', 'workflow': {'1': {}}},
            {'mode': 'i2v', 'image_url': 'https://example.com/a.png'},
            {'mode': 'v2v'},
            {'mode': 't2v', 'width': 4000},
        ],
    )
    def test_rejected_bodies(self, body):
        with pytest.raises(BadRequestError):
            parse_generate_request(VideoGenerateRequest, body)

    def test_image_value_prefers_base64_field(self):
        params = parse_generate_request(VideoGenerateRequest, {'image_base64': 'aGk=', 'image': 'b3RoZXI='})

        assert params.image_value == 'aGk='
