"""
HTTP and WebSocket front end.

Routes:
- `POST /sql`: one statement over a pooled connection, fully tagged result
- `/v2` (WebSocket): a session with its own dedicated connection
- `OPTIONS` on any path: permissive CORS preflight
- anything else: JSON 404
"""
import json
import logging
import platform
from contextlib import asynccontextmanager
from typing import Any

import uvicorn
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from neonproxy import __version__
from neonproxy.connection import create_engine_for_options, pooled_connection
from neonproxy.contracts import parse_request
from neonproxy.encoding import json_default, json_safe
from neonproxy.errors import translate
from neonproxy.exceptions import IntegrityError, ProgrammingError
from neonproxy.options import ProxyOptions
from neonproxy.query import execute
from neonproxy.result import encode_result
from neonproxy.session import SessionManager

__all__ = ['ProxyServer', 'create_app', 'main']

logger = logging.getLogger(__name__)

SQL_PATH = '/sql'
WEBSOCKET_PATH = '/v2'

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(name)s: %(message)s'

PREFLIGHT_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'POST, OPTIONS',
    'Access-Control-Allow-Headers': (
        'Content-Type, Neon-Connection-String, Neon-Raw-Text-Output, '
        'Neon-Array-Mode, Neon-Pool-Opt-In, Neon-Batch-Read-Only, '
        'Neon-Batch-Isolation-Level'
    ),
}
RESULT_HEADERS = {
    'Access-Control-Allow-Origin': '*',
    'Connection': 'keep-alive',
    'Keep-Alive': 'timeout=30',
}
ERROR_HEADERS = {'Access-Control-Allow-Origin': '*'}
NOT_FOUND_BODY = {'error': f'Not found. Use POST {SQL_PATH}'}

ALL_METHODS = ['GET', 'POST', 'PUT', 'PATCH', 'DELETE', 'HEAD']


def dumps(content: Any) -> str:
    """Serialize a reply as JSON; non-finite floats become their text form."""
    return json.dumps(json_safe(content), default=json_default, ensure_ascii=False,
                      separators=(',', ':'))


class WireJSONResponse(JSONResponse):
    """JSON response that can render every value the driver returns."""

    def render(self, content: Any) -> bytes:
        return dumps(content).encode('utf-8')


def log_banner(options: ProxyOptions) -> None:
    logger.info(f'Neon proxy v{__version__} (Python {platform.python_version()})')
    logger.info(f'HTTP endpoint: http://{options.hostname}:{options.port}{SQL_PATH}')
    logger.info(f'WebSocket endpoint: ws://{options.hostname}:{options.port}{WEBSOCKET_PATH}')
    logger.info(f'PostgreSQL: {options.masked_connection_string}')


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create the backend engines on startup and dispose them on shutdown."""
    options: ProxyOptions = app.state.options
    engine = create_engine_for_options(options, use_pool=True)
    session_engine = create_engine_for_options(options)
    app.state.engine = engine
    app.state.sessions = SessionManager(session_engine)
    log_banner(options)

    yield

    logger.info('Shutting down...')
    await app.state.sessions.close_all()
    await session_engine.dispose()
    await engine.dispose()


def _log_failure(e: Exception) -> None:
    if isinstance(e, IntegrityError + ProgrammingError):
        logger.warning(f'HTTP query error: {e}')
    else:
        logger.error('HTTP query error', exc_info=True)


async def sql_query(request: Request) -> Response:
    """Run one statement and return the tagged result envelope."""
    try:
        body = parse_request(await request.body())
        async with pooled_connection(request.app.state.engine) as cn:
            rows = await execute(cn, body.query, body.args)
        result = encode_result(rows, body.query)
        return WireJSONResponse(result.to_dict(), headers=RESULT_HEADERS)
    except Exception as e:
        _log_failure(e)
        return WireJSONResponse(translate(e).to_dict(), status_code=400,
                                headers=ERROR_HEADERS)


async def session_socket(websocket: WebSocket) -> None:
    """Serve one WebSocket session, one frame at a time."""
    sessions: SessionManager = websocket.app.state.sessions
    # WebSocket objects are mappings and so unhashable.
    key = id(websocket)
    await websocket.accept()
    try:
        await sessions.open(key)
    except Exception:
        # Frames on this socket are answered with "No database connection".
        logger.error('Could not open a dedicated connection', exc_info=True)

    try:
        while True:
            message = await websocket.receive()
            if message['type'] == 'websocket.disconnect':
                break
            frame = message.get('text')
            if frame is None:
                frame = message.get('bytes') or b''
            reply = await sessions.handle(key, frame)
            await websocket.send_text(dumps(reply))
    except WebSocketDisconnect:
        pass
    finally:
        await sessions.close(key)


async def preflight(path: str) -> Response:
    return Response(status_code=204, headers=PREFLIGHT_HEADERS)


async def upgrade_required() -> Response:
    return PlainTextResponse('WebSocket upgrade failed', status_code=400)


async def not_found(path: str) -> Response:
    return JSONResponse(NOT_FOUND_BODY, status_code=404)


def create_app(options: ProxyOptions | None = None) -> FastAPI:
    """Build the proxy application.

    Engines are created by the lifespan handler, so building the app never
    touches the database.
    """
    app = FastAPI(
        title='neonproxy',
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )
    app.state.options = options or ProxyOptions.from_env()

    # Order matters: the catch-all routes go last.
    app.add_api_route('/{path:path}', preflight, methods=['OPTIONS'])
    app.add_api_route(SQL_PATH, sql_query, methods=['POST'])
    app.add_api_websocket_route(WEBSOCKET_PATH, session_socket)
    app.add_api_route(WEBSOCKET_PATH, upgrade_required, methods=['GET'])
    app.add_api_route('/{path:path}', not_found, methods=ALL_METHODS)
    return app


class ProxyServer:
    """Runs the proxy application under uvicorn.
    """

    def __init__(self, options: ProxyOptions | None = None) -> None:
        self.options = options or ProxyOptions.from_env()
        self.app = create_app(self.options)
        self.server = uvicorn.Server(uvicorn.Config(
            self.app,
            host=self.options.hostname,
            port=self.options.port,
            log_level=self.options.log_level.lower(),
            lifespan='on',
        ))

    def run(self) -> None:
        """Serve until interrupted (SIGINT/SIGTERM are handled by uvicorn)."""
        self.server.run()

    async def serve(self) -> None:
        await self.server.serve()

    def stop(self) -> None:
        """Ask the server to finish in-flight work and exit."""
        self.server.should_exit = True


def main() -> None:
    options = ProxyOptions.from_env()
    logging.basicConfig(level=options.log_level, format=LOG_FORMAT)
    ProxyServer(options).run()


if __name__ == '__main__':
    main()
