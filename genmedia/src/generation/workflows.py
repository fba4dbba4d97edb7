"""
Generation Workflows

ComfyUI API-format workflow templates and the node maps that say where each
request value is written. Templates are deep-copied per request; a node map
entry may target several nodes (for example both samplers of a two-stage
video pipeline).
"""

import copy
import math

from dataclasses import dataclass
from typing import Any, Literal, Union

from genmedia.common.exception.errors import BadRequestError
from genmedia.src.billing.shared.exceptions import WorkflowError

MAX_IMAGE_BYTES = 10 * 1024 * 1024


@dataclass(frozen=True)
class NodeMapEntry:
    id: str
    input: str


NodeMap = dict[str, Union[NodeMapEntry, tuple[NodeMapEntry, ...]]]


# =============================================================================
# IMAGE (anima)
# =============================================================================
IMAGE_WORKFLOW: dict[str, Any] = {
    '3': {
        'class_type': 'KSampler',
        'inputs': {
            'seed': 0,
            'steps': 30,
            'cfg': 4,
            'sampler_name': 'euler_ancestral',
            'scheduler': 'normal',
            'denoise': 1,
            'model': ['4', 0],
            'positive': ['6', 0],
            'negative': ['7', 0],
            'latent_image': ['5', 0],
        },
    },
    '4': {'class_type': 'CheckpointLoaderSimple', 'inputs': {'ckpt_name': 'anima.safetensors'}},
    '5': {'class_type': 'EmptyLatentImage', 'inputs': {'width': 1024, 'height': 1024, 'batch_size': 1}},
    '6': {'class_type': 'CLIPTextEncode', 'inputs': {'text': '', 'clip': ['4', 1]}},
    '7': {'class_type': 'CLIPTextEncode', 'inputs': {'text': '', 'clip': ['4', 1]}},
    '8': {'class_type': 'VAEDecode', 'inputs': {'samples': ['3', 0], 'vae': ['4', 2]}},
    '9': {'class_type': 'SaveImage', 'inputs': {'filename_prefix': 'anima', 'images': ['8', 0]}},
}

IMAGE_NODE_MAP: NodeMap = {
    'prompt': NodeMapEntry('6', 'text'),
    'negative_prompt': NodeMapEntry('7', 'text'),
    'seed': NodeMapEntry('3', 'seed'),
    'steps': NodeMapEntry('3', 'steps'),
    'cfg': NodeMapEntry('3', 'cfg'),
    'width': NodeMapEntry('5', 'width'),
    'height': NodeMapEntry('5', 'height'),
}


# =============================================================================
# VIDEO (wan_remix)
# =============================================================================
def _video_workflow(latent_node: dict[str, Any], image_node: dict[str, Any] | None) -> dict[str, Any]:
    workflow: dict[str, Any] = {
        '2': {'class_type': 'CLIPTextEncode', 'inputs': {'text': '', 'clip': ['11', 0]}},
        '3': {'class_type': 'CLIPTextEncode', 'inputs': {'text': '', 'clip': ['11', 0]}},
        '4': latent_node,
        '5': {
            'class_type': 'KSamplerAdvanced',
            'inputs': {
                'add_noise': 'enable',
                'noise_seed': 0,
                'steps': 4,
                'cfg': 1,
                'sampler_name': 'euler',
                'scheduler': 'simple',
                'start_at_step': 0,
                'end_at_step': 2,
                'return_with_leftover_noise': 'enable',
                'model': ['12', 0],
                'positive': ['4', 0],
                'negative': ['4', 1],
                'latent_image': ['4', 2],
            },
        },
        '6': {
            'class_type': 'KSamplerAdvanced',
            'inputs': {
                'add_noise': 'disable',
                'noise_seed': 0,
                'steps': 4,
                'cfg': 1,
                'sampler_name': 'euler',
                'scheduler': 'simple',
                'start_at_step': 2,
                'end_at_step': 10000,
                'return_with_leftover_noise': 'disable',
                'model': ['13', 0],
                'positive': ['4', 0],
                'negative': ['4', 1],
                'latent_image': ['5', 0],
            },
        },
        '7': {'class_type': 'VAEDecode', 'inputs': {'samples': ['6', 0], 'vae': ['14', 0]}},
        '8': {'class_type': 'CreateVideo', 'inputs': {'fps': 8, 'images': ['7', 0]}},
        '9': {'class_type': 'SaveVideo', 'inputs': {'filename_prefix': 'wan_remix', 'video': ['8', 0]}},
        '11': {'class_type': 'CLIPLoader', 'inputs': {'clip_name': 'umt5_xxl_fp8.safetensors', 'type': 'wan'}},
        '12': {'class_type': 'UNETLoader', 'inputs': {'unet_name': 'wan_high_noise.safetensors'}},
        '13': {'class_type': 'UNETLoader', 'inputs': {'unet_name': 'wan_low_noise.safetensors'}},
        '14': {'class_type': 'VAELoader', 'inputs': {'vae_name': 'wan_vae.safetensors'}},
    }
    if image_node is not None:
        workflow['1'] = image_node
    return workflow


VIDEO_I2V_WORKFLOW = _video_workflow(
    {
        'class_type': 'WanImageToVideo',
        'inputs': {
            'width': 768,
            'height': 448,
            'length': 40,
            'batch_size': 1,
            'positive': ['2', 0],
            'negative': ['3', 0],
            'vae': ['14', 0],
            'start_image': ['1', 0],
        },
    },
    {'class_type': 'LoadImage', 'inputs': {'image': 'input.png'}},
)

VIDEO_T2V_WORKFLOW = _video_workflow(
    {
        'class_type': 'WanTextToVideoLatent',
        'inputs': {
            'width': 768,
            'height': 448,
            'length': 40,
            'batch_size': 1,
            'positive': ['2', 0],
            'negative': ['3', 0],
        },
    },
    None,
)

_SAMPLERS = ('5', '6')

_VIDEO_NODE_MAP: NodeMap = {
    'prompt': NodeMapEntry('2', 'text'),
    'negative_prompt': NodeMapEntry('3', 'text'),
    'seed': tuple(NodeMapEntry(node, 'noise_seed') for node in _SAMPLERS),
    'steps': tuple(NodeMapEntry(node, 'steps') for node in _SAMPLERS),
    'cfg': tuple(NodeMapEntry(node, 'cfg') for node in _SAMPLERS),
    'width': NodeMapEntry('4', 'width'),
    'height': NodeMapEntry('4', 'height'),
    'num_frames': NodeMapEntry('4', 'length'),
    'fps': NodeMapEntry('8', 'fps'),
    'end_step': NodeMapEntry('5', 'end_at_step'),
    'start_step': NodeMapEntry('6', 'start_at_step'),
}

VIDEO_I2V_NODE_MAP: NodeMap = {**_VIDEO_NODE_MAP, 'image': NodeMapEntry('1', 'image')}
VIDEO_T2V_NODE_MAP: NodeMap = dict(_VIDEO_NODE_MAP)


def video_template(mode: Literal['i2v', 't2v']) -> tuple[dict[str, Any], NodeMap]:
    if mode == 't2v':
        return VIDEO_T2V_WORKFLOW, VIDEO_T2V_NODE_MAP
    return VIDEO_I2V_WORKFLOW, VIDEO_I2V_NODE_MAP


# =============================================================================
# BUILDING
# =============================================================================
def build_workflow(template: dict[str, Any], node_map: NodeMap, values: dict[str, Any]) -> dict[str, Any]:
    """
    Copy ``template`` and write each non-None value to the nodes its map entry names.

    Raises:
        WorkflowError: a mapped node is missing from the template
    """
    workflow = copy.deepcopy(template)
    for key, value in values.items():
        entry = node_map.get(key)
        if entry is None or value is None:
            continue
        entries = entry if isinstance(entry, tuple) else (entry,)
        for item in entries:
            node = workflow.get(item.id)
            if not isinstance(node, dict) or not isinstance(node.get('inputs'), dict):
                raise WorkflowError(
                    'Workflow node mapping failed.', details={'detail': f'Node {item.id} not found in workflow.'}
                )
            node['inputs'][item.input] = value
    return workflow


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def clamp_dimension(value: float, max_long_side: int, multiple: int = 64, min_dimension: int = 256) -> int:
    rounded = _round_half_up(value / multiple) * multiple
    return max(min_dimension, min(max_long_side, rounded))


def to_safe_dimensions(width: int, height: int, max_long_side: int = 768, multiple: int = 64) -> tuple[int, int]:
    """Scale so the long side fits ``max_long_side``, snapping both sides to ``multiple``."""
    longest = max(width, height)
    scale = max_long_side / longest if longest > max_long_side else 1
    return (
        clamp_dimension(width * scale, max_long_side, multiple),
        clamp_dimension(height * scale, max_long_side, multiple),
    )


def _is_http_url(value: str) -> bool:
    return value.strip().lower().startswith(('http://', 'https://'))


def _strip_data_url(value: str) -> str:
    comma = value.find(',')
    if value.startswith('data:') and comma != -1:
        return value[comma + 1:]
    return value


def estimate_base64_bytes(value: str) -> int:
    trimmed = value.strip()
    padding = 2 if trimmed.endswith('==') else 1 if trimmed.endswith('=') else 0
    return max(0, (len(trimmed) * 3) // 4 - padding)


def ensure_base64_input(label: str, value: Any, max_bytes: int = MAX_IMAGE_BYTES) -> str:
    """
    Normalize an inline image to bare base64.

    Data URLs are stripped to their payload. URLs and oversized images are
    rejected; non-string or blank values yield an empty string.
    """
    if not isinstance(value, str) or not value.strip():
        return ''
    trimmed = value.strip()
    if _is_http_url(trimmed):
        raise BadRequestError(f'{label} must be base64 (image_url is not allowed).')
    data = _strip_data_url(trimmed)
    if not data:
        return ''
    if estimate_base64_bytes(data) > max_bytes:
        raise BadRequestError(f'{label} is too large.')
    return data
