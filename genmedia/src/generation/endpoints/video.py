"""
Video Generation Endpoints

Charge-on-completion: the caller's balance is checked before submission,
and the ticket cost (tiered by clip length) is charged under
``wan_remix:<job-id>`` once the runner accepts the job. Polls derive the
same usage id from the job id, so a success seen again is never charged
twice, and a failed job refunds the charge.
"""

import logging

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from genmedia.common.exception.errors import BadRequestError
from genmedia.core.conf import settings
from genmedia.src.billing.domain.usage import UsageId
from genmedia.src.billing.endpoints.dependencies import CurrentUser, get_settlement_engine
from genmedia.src.billing.settlement.engine import SettlementEngine
from genmedia.src.billing.shared.config import get_product
from genmedia.src.billing.tickets.calculator import ticket_cost_for_seconds
from genmedia.src.generation.endpoints.dependencies import get_video_runner, read_json_body
from genmedia.src.generation.endpoints.responses import runner_response
from genmedia.src.generation.runner import JobRunnerClient
from genmedia.src.generation.schema import (
    VIDEO_FIXED_CFG,
    VIDEO_FIXED_FPS,
    VIDEO_FIXED_STEPS,
    VIDEO_MAX_LONG_SIDE,
    VideoGenerateRequest,
    parse_generate_request,
)
from genmedia.src.generation.workflows import build_workflow, ensure_base64_input, to_safe_dimensions, video_template

logger = logging.getLogger(__name__)

router = APIRouter(tags=['Generation'])

product = get_product('wan_remix')


@router.post('/generate/video')
async def generate_video(
    request: Request,
    user: CurrentUser,
    engine: SettlementEngine = Depends(get_settlement_engine),
    runner: JobRunnerClient = Depends(get_video_runner),
) -> Response:
    """Submit a video job; ticketsLeft is included once the job is charged."""
    body = await read_json_body(request)
    params = parse_generate_request(VideoGenerateRequest, body)

    image_base64 = ensure_base64_input('image', params.image_value) if params.image_value else ''
    if params.mode == 'i2v' and not image_base64:
        raise BadRequestError('image is empty.')

    seconds = params.seconds
    cost = ticket_cost_for_seconds(seconds)
    width, height = to_safe_dimensions(params.width, params.height, VIDEO_MAX_LONG_SIDE)
    split_step = max(1, VIDEO_FIXED_STEPS // 2)
    ticket_meta = {
        'prompt_length': len(params.prompt),
        'width': width,
        'height': height,
        'seconds': seconds,
        'frames': params.num_frames,
        'fps': VIDEO_FIXED_FPS,
        'steps': VIDEO_FIXED_STEPS,
        'mode': params.mode,
        'ticket_cost': cost,
    }

    await engine.precheck(user, cost)

    template, node_map = video_template(params.mode)
    workflow = build_workflow(
        template,
        node_map,
        {
            'image': params.image_name if image_base64 else None,
            'prompt': params.prompt,
            'negative_prompt': params.negative_prompt,
            'seed': params.resolved_seed(),
            'steps': VIDEO_FIXED_STEPS,
            'cfg': VIDEO_FIXED_CFG,
            'width': width,
            'height': height,
            'num_frames': params.num_frames,
            'fps': VIDEO_FIXED_FPS,
            'end_step': split_step,
            'start_step': split_step,
        },
    )
    job_input = {
        'workflow': workflow,
        'images': [{'name': params.image_name, 'image': image_base64}] if image_base64 else [],
        'seconds': seconds,
        'ticket_cost': cost,
    }
    if settings.COMFY_ORG_API_KEY:
        job_input['comfy_org_api_key'] = settings.COMFY_ORG_API_KEY

    upstream = await runner.submit(job_input)
    result = await engine.settle_submission(
        user,
        namespace=product.namespace,
        accepted=upstream.ok,
        payload=upstream.payload,
        cost=cost,
        reason=product.reason,
        metadata=ticket_meta,
    )
    if result.charge is not None:
        logger.info(f'[GENERATE] Video job {result.usage_id} accepted, charged {cost}')
    return runner_response(upstream, ticketsLeft=result.tickets_left)


@router.get('/generate/video')
async def get_video_status(
    user: CurrentUser,
    id: Optional[str] = Query(None, description='Runner job id'),
    engine: SettlementEngine = Depends(get_settlement_engine),
    runner: JobRunnerClient = Depends(get_video_runner),
) -> Response:
    """Poll a video job; success charges once, failure refunds."""
    if not id:
        raise BadRequestError('id is required.')

    upstream = await runner.poll(id)
    if not isinstance(upstream.payload, dict):
        return runner_response(upstream)

    result = await engine.settle(
        user,
        UsageId.for_job(product.namespace, id),
        upstream.payload,
        charge_on_success=product.charge_on_completion,
        reason=product.reason,
        metadata={'job_id': id, 'source': 'status'},
    )
    return runner_response(upstream, ticketsLeft=result.tickets_left)
