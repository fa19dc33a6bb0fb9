"""
AWS Lambda handler for the administrative JSON API (API Gateway proxy).

Routes:
    GET    /health
    POST   /api/v1/emails/process
    GET    /api/v1/emails/logs?page=&page_size=&status=
    GET    /api/v1/stats
    GET    /api/v1/targets
    POST   /api/v1/targets
    PUT    /api/v1/targets/{id}
    DELETE /api/v1/targets/{id}
"""

import json
import logging
import re
from typing import Dict, Any, Optional

from bootstrap import AppContext, build_context, configure_logging
from services.destinations import DestinationNotFound, DuplicateDestinationError
from services.processing_log import DEFAULT_PAGE_SIZE, clamp_page
from settings import ConfigurationError, load_settings

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    'Content-Type': 'application/json',
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, PUT, DELETE, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type, Authorization',
}

TARGET_PATH = re.compile(r'^/api/v1/targets/(?P<id>[^/]+)/?$')

# Built on first invocation, reused while the container stays warm
_context: Optional[AppContext] = None


def get_context() -> AppContext:
    """Return this container's stores; the pipeline is built on demand."""
    global _context
    if _context is None:
        settings = load_settings()
        configure_logging(settings.log_level)
        _context = build_context(settings, with_pipeline=False)
    return _context


def _response(status_code: int, body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    return {
        'statusCode': status_code,
        'headers': CORS_HEADERS,
        'body': json.dumps(body, ensure_ascii=False) if body is not None else '',
    }


def _error(status_code: int, error: str, message: Optional[str] = None) -> Dict[str, Any]:
    body = {'error': error}
    if message:
        body['message'] = message
    return _response(status_code, body)


def _parse_body(event: Dict[str, Any]) -> Dict[str, Any]:
    raw = event.get('body') or '{}'
    data = json.loads(raw)
    if not isinstance(data, dict):
        raise ValueError("Request body must be a JSON object")
    return data


def _query_int(params: Dict[str, str], name: str, default: int) -> int:
    try:
        return int(params.get(name, default))
    except (TypeError, ValueError):
        return default


def health_check(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Simple health check endpoint for monitoring.
    """
    return _response(200, {
        'status': 'healthy',
        'environment': get_context().settings.environment,
    })


def process_emails(ctx: AppContext) -> Dict[str, Any]:
    try:
        summary = ctx.ensure_pipeline().run()
    except ConfigurationError as e:
        logger.error(f"Pipeline unavailable: {e}")
        return _error(500, 'Failed to process emails', str(e))
    except Exception as e:
        logger.error(f"On-demand run failed: {e}", exc_info=True)
        return _error(500, 'Failed to process emails', str(e))

    if summary.locked:
        return _error(409, 'Another run is in progress')
    return _response(200, {'message': 'Email processing complete', 'data': summary.to_dict()})


def list_logs(ctx: AppContext, params: Dict[str, str]) -> Dict[str, Any]:
    page, page_size = clamp_page(
        _query_int(params, 'page', 1),
        _query_int(params, 'page_size', DEFAULT_PAGE_SIZE)
    )
    records, total = ctx.records.list(page, page_size, params.get('status') or None)
    return _response(200, {
        'data': [r.to_dict() for r in records],
        'pagination': {
            'page': page,
            'page_size': page_size,
            'total': total,
            'total_page': (total + page_size - 1) // page_size,
        },
    })


def get_stats(ctx: AppContext) -> Dict[str, Any]:
    counts = ctx.records.count_by_status()
    return _response(200, {'data': {**counts, 'total': sum(counts.values())}})


def list_targets(ctx: AppContext) -> Dict[str, Any]:
    return _response(200, {'data': [d.to_dict() for d in ctx.destinations.list_active()]})


def create_target(ctx: AppContext, event: Dict[str, Any]) -> Dict[str, Any]:
    data = _parse_body(event)
    if not str(data.get('name') or '').strip():
        return _error(400, 'Name is required')
    if not str(data.get('email') or '').strip():
        return _error(400, 'Email is required')

    try:
        destination = ctx.destinations.create(data['name'], data['email'], data.get('keywords'))
    except DuplicateDestinationError as e:
        return _error(409, 'Failed to create target', str(e))
    return _response(201, {'message': 'Created', 'data': destination.to_dict()})


def update_target(ctx: AppContext, destination_id: str, event: Dict[str, Any]) -> Dict[str, Any]:
    data = _parse_body(event)
    destination = ctx.destinations.update(destination_id, data)
    return _response(200, {'message': 'Updated', 'data': destination.to_dict()})


def delete_target(ctx: AppContext, destination_id: str) -> Dict[str, Any]:
    ctx.destinations.soft_delete(destination_id)
    return _response(200, {'message': 'Deleted'})


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Dispatch an API Gateway proxy request.

    Args:
        event: API Gateway proxy event (httpMethod, path, body, ...)
        context: Lambda context

    Returns:
        API Gateway proxy response with JSON body and CORS headers
    """
    method = (event.get('httpMethod') or 'GET').upper()
    path = event.get('path') or '/'
    params = event.get('queryStringParameters') or {}
    logger.info(f"{method} {path}")

    if method == 'OPTIONS':
        return _response(204)

    try:
        if path == '/health' and method == 'GET':
            return health_check(event, context)

        ctx = get_context()

        if path == '/api/v1/emails/process' and method == 'POST':
            return process_emails(ctx)
        if path == '/api/v1/emails/logs' and method == 'GET':
            return list_logs(ctx, params)
        if path == '/api/v1/stats' and method == 'GET':
            return get_stats(ctx)
        if path.rstrip('/') == '/api/v1/targets':
            if method == 'GET':
                return list_targets(ctx)
            if method == 'POST':
                return create_target(ctx, event)

        match = TARGET_PATH.match(path)
        if match:
            if method == 'PUT':
                return update_target(ctx, match.group('id'), event)
            if method == 'DELETE':
                return delete_target(ctx, match.group('id'))

        return _error(404, 'Not found', f"{method} {path}")

    except DestinationNotFound as e:
        return _error(404, 'Target not found', str(e))
    except ValueError as ve:
        # json.JSONDecodeError is a ValueError
        logger.error(f"Validation error: {str(ve)}")
        return _error(400, 'Invalid request', str(ve))
    except Exception as e:
        logger.error(f"Error handling {method} {path}: {str(e)}", exc_info=True)
        return _error(500, 'Internal server error', str(e))
