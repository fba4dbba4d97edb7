"""
Image Generation Endpoints

Charge-before-dispatch: one ticket is charged under a fresh usage id before
the job is submitted. The ticket is refunded when the workflow cannot be
built, the runner is unreachable, or the runner reports a failure, both at
submit time and while polling.
"""

import logging

from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import JSONResponse

from genmedia.common.exception.errors import BadRequestError, UpstreamJobFailure, UpstreamTransportError
from genmedia.src.billing.domain.usage import UsageId
from genmedia.src.billing.endpoints.dependencies import CurrentUser, get_settlement_engine
from genmedia.src.billing.settlement.classifier import classify, extract_job_id
from genmedia.src.billing.settlement.engine import SettlementEngine
from genmedia.src.billing.shared.config import get_product
from genmedia.src.billing.shared.exceptions import WorkflowError
from genmedia.src.billing.tickets.calculator import IMAGE_TICKET_COST
from genmedia.src.generation.endpoints.dependencies import get_image_runner, read_json_body
from genmedia.src.generation.endpoints.responses import runner_response
from genmedia.src.generation.runner import JobRunnerClient
from genmedia.src.generation.schema import ImageGenerateRequest, parse_generate_request
from genmedia.src.generation.workflows import IMAGE_NODE_MAP, IMAGE_WORKFLOW, build_workflow

logger = logging.getLogger(__name__)

router = APIRouter(tags=['Generation'])

product = get_product('anima')


@router.post('/generate')
async def generate_image(
    request: Request,
    user: CurrentUser,
    engine: SettlementEngine = Depends(get_settlement_engine),
    runner: JobRunnerClient = Depends(get_image_runner),
) -> Response:
    """Submit an image job; the response carries usage_id and ticketsLeft."""
    body = await read_json_body(request)
    params = parse_generate_request(ImageGenerateRequest, body)
    seed = params.resolved_seed()

    usage_id, charge = await engine.charge_before_dispatch(
        user,
        namespace=product.namespace,
        cost=IMAGE_TICKET_COST,
        reason=product.reason,
        metadata={
            'width': params.width,
            'height': params.height,
            'steps': params.steps,
            'cfg': params.cfg,
            'prompt_length': len(params.prompt),
            'source': 'run',
        },
    )

    try:
        workflow = build_workflow(
            IMAGE_WORKFLOW,
            IMAGE_NODE_MAP,
            {
                'prompt': params.prompt,
                'negative_prompt': params.negative_prompt,
                'seed': seed,
                'steps': params.steps,
                'cfg': params.cfg,
                'width': params.width,
                'height': params.height,
            },
        )
    except WorkflowError as e:
        refund = await engine.refund_quietly(user, usage_id, metadata={'reason': 'workflow_apply_failed'})
        e.details['refund'] = refund.to_dict()
        raise

    try:
        upstream = await runner.submit({'workflow': workflow})
    except UpstreamTransportError as e:
        refund = await engine.refund_quietly(user, usage_id, metadata={'reason': 'network_error'})
        e.details['refund'] = refund.to_dict()
        raise

    tickets_left = charge.tickets_left
    classification = classify(upstream.payload)
    if not upstream.ok or not isinstance(upstream.payload, dict) or classification.failed:
        logger.info(f'[GENERATE] Image job for {usage_id} rejected ({upstream.status_code}), refunding')
        refund = await engine.refund_quietly(
            user, usage_id, metadata={'reason': 'failure', 'status': classification.status or None}
        )
        if refund.tickets_left is not None:
            tickets_left = refund.tickets_left
        if upstream.ok and classification.failed:
            error = classification.error
            raise UpstreamJobFailure(
                error if isinstance(error, str) and error else 'Generation failed.',
                details={
                    'id': extract_job_id(upstream.payload),
                    'status': classification.client_status,
                    'usage_id': str(usage_id),
                    'ticketsLeft': tickets_left,
                    'refund': refund.to_dict(),
                },
            )

    if not isinstance(upstream.payload, dict):
        return JSONResponse(
            {'error': 'Invalid runner response.', 'usage_id': str(usage_id), 'ticketsLeft': tickets_left},
            status_code=upstream.status_code if not upstream.ok else 502,
        )
    return runner_response(upstream, usage_id=str(usage_id), ticketsLeft=tickets_left)


@router.get('/generate')
async def get_image_status(
    user: CurrentUser,
    id: Optional[str] = Query(None, description='Runner job id'),
    usage_id: Optional[str] = Query(None, description='Usage id returned at submit'),
    usage_id_alias: Optional[str] = Query(None, alias='usageId', include_in_schema=False),
    engine: SettlementEngine = Depends(get_settlement_engine),
    runner: JobRunnerClient = Depends(get_image_runner),
) -> Response:
    """Poll an image job; a failed job refunds its ticket."""
    if not id:
        raise BadRequestError('id is required.')
    usage = UsageId.parse(usage_id or usage_id_alias)
    if usage is None:
        raise BadRequestError('usage_id is required.')
    if usage.is_refund or not usage.startswith(f'{product.namespace}:'):
        raise BadRequestError('usage_id does not belong to an image job.')

    upstream = await runner.poll(id)
    if not isinstance(upstream.payload, dict):
        return runner_response(upstream)

    result = await engine.settle(
        user,
        usage,
        upstream.payload,
        charge_on_success=product.charge_on_completion,
        metadata={'job_id': id, 'source': 'status'},
    )
    return runner_response(upstream, ticketsLeft=result.tickets_left)
