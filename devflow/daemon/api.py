"""HTTP API for the devflow daemon."""

import asyncio
from typing import Optional

from aiohttp import web
from loguru import logger

from .error_handling import CriticalIngestionError, StoreError, ValidationError
from .models import Category
from .store import EntryNotFoundError


def create_api_app(daemon) -> web.Application:
    """Create the aiohttp application with routes."""
    app = web.Application(middlewares=[error_middleware, cors_middleware])
    app['daemon'] = daemon
    app['background_tasks'] = set()

    app.router.add_post('/entries', handle_add_entry)
    app.router.add_post('/entries/bulk', handle_bulk_add)
    app.router.add_get('/entries', handle_list_entries)
    app.router.add_get('/entries/stats', handle_entry_stats)
    app.router.add_patch('/entries/{id}', handle_toggle_completion)
    app.router.add_delete('/entries/{id}', handle_delete_entry)
    app.router.add_delete('/entries', handle_clear_entries)
    app.router.add_get('/search', handle_search)
    app.router.add_get('/status', handle_status)
    app.router.add_get('/health', handle_health)
    app.router.add_post('/shutdown', handle_shutdown)

    return app


def error_response(code: str, message: str, status: int) -> web.Response:
    return web.json_response({'error': {'code': code, 'message': message}}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler) -> web.StreamResponse:
    """Translate service errors into JSON error bodies."""
    try:
        return await handler(request)
    except ValidationError as e:
        return error_response('invalid_request', str(e), 400)
    except EntryNotFoundError as e:
        return error_response('not_found', str(e), 404)
    except CriticalIngestionError as e:
        logger.error(f"Critical ingestion error on {request.path}: {e}")
        return error_response('critical_error', str(e), 500)
    except StoreError as e:
        logger.error(f"Store error on {request.path}: {e}")
        return error_response('store_unavailable', str(e), 503)


@web.middleware
async def cors_middleware(request: web.Request, handler) -> web.StreamResponse:
    # Local development from the browser
    response = await handler(request)
    response.headers['Access-Control-Allow-Origin'] = '*'
    response.headers['Access-Control-Allow-Methods'] = 'GET, POST, PATCH, DELETE, OPTIONS'
    response.headers['Access-Control-Allow-Headers'] = 'Content-Type'
    return response


async def _json_body(request: web.Request) -> dict:
    try:
        data = await request.json()
    except ValueError:
        raise ValidationError("Request body must be JSON")
    if not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data


def _category_param(request: web.Request) -> Optional[Category]:
    value = request.query.get('category')
    if not value:
        return None
    if value not in {c.value for c in Category}:
        raise ValidationError(f"Unknown category: {value}")
    return Category(value)


async def handle_add_entry(request: web.Request) -> web.Response:
    """Classify and store one entry."""
    daemon = request.app['daemon']
    data = await _json_body(request)

    content = data.get('content')
    if not isinstance(content, str):
        raise ValidationError("content is required")

    entry = await daemon.ingestion.add_entry(content)
    return web.json_response(entry.to_dict(), status=201)


async def handle_bulk_add(request: web.Request) -> web.Response:
    """Split, classify and store a multi-item text blob."""
    daemon = request.app['daemon']
    data = await _json_body(request)

    raw_text = data.get('text')
    if not isinstance(raw_text, str):
        raise ValidationError("text is required")

    report = await daemon.ingestion.bulk_add_entries(raw_text)
    return web.json_response(report.to_dict(), status=201)


async def handle_list_entries(request: web.Request) -> web.Response:
    daemon = request.app['daemon']

    try:
        limit = int(request.query['limit']) if 'limit' in request.query else None
    except ValueError:
        raise ValidationError("limit must be an integer")

    entries = await daemon.ingestion.list_entries(category=_category_param(request), limit=limit)
    return web.json_response({'entries': [e.to_dict() for e in entries]})


async def handle_entry_stats(request: web.Request) -> web.Response:
    daemon = request.app['daemon']
    counts = await daemon.ingestion.category_counts()
    return web.json_response({'counts': counts, 'total': sum(counts.values())})


async def handle_toggle_completion(request: web.Request) -> web.Response:
    daemon = request.app['daemon']
    entry_id = request.match_info['id']
    data = await _json_body(request)

    is_completed = data.get('is_completed')
    if not isinstance(is_completed, bool):
        raise ValidationError("is_completed must be true or false")

    entry = await daemon.ingestion.toggle_completion(entry_id, is_completed)
    return web.json_response(entry.to_dict())


async def handle_delete_entry(request: web.Request) -> web.Response:
    daemon = request.app['daemon']
    await daemon.ingestion.delete_entry(request.match_info['id'])
    return web.json_response({'status': 'deleted'})


async def handle_clear_entries(request: web.Request) -> web.Response:
    daemon = request.app['daemon']
    await daemon.ingestion.clear_all()
    return web.json_response({'status': 'cleared'})


async def handle_search(request: web.Request) -> web.Response:
    """Smart (oracle-expanded) or local search over the owner's entries."""
    daemon = request.app['daemon']

    query = request.query.get('q', '')
    mode = request.query.get('mode', 'smart')
    if mode not in ('smart', 'local'):
        raise ValidationError("mode must be smart or local")

    entries = await daemon.ingestion.list_entries()

    if mode == 'local':
        response = daemon.search_orchestrator.local(query, entries)
    else:
        response = await daemon.search_orchestrator.smart_search(query, entries)

    return web.json_response({'query': query, **response.to_dict()})


async def handle_status(request: web.Request) -> web.Response:
    """Get daemon status."""
    daemon = request.app['daemon']
    return web.json_response(daemon.get_status())


async def handle_health(request: web.Request) -> web.Response:
    """Health check endpoint."""
    daemon = request.app['daemon']
    return web.json_response({
        'status': 'ok' if daemon.running else 'stopping',
        'search_latency': daemon.search_orchestrator.get_performance_stats()
    })


async def handle_shutdown(request: web.Request) -> web.Response:
    """Shutdown the daemon."""
    daemon = request.app['daemon']
    logger.info("Shutdown requested via API")

    # Let the response go out first
    async def shutdown():
        await asyncio.sleep(0.5)
        daemon.request_shutdown()

    task = asyncio.create_task(shutdown())
    request.app['background_tasks'].add(task)
    task.add_done_callback(request.app['background_tasks'].discard)
    return web.json_response({'status': 'shutting down'})
