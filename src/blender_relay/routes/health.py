"""Health check endpoint."""

from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route


async def health_check(request: Request) -> JSONResponse:
    """Report backend connectivity and the number of attached clients."""
    return JSONResponse(request.app.state.relay.health())


health_routes = [
    Route("/health", health_check, methods=["GET"]),
]
