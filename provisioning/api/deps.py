from fastapi import Request, WebSocket

from ..services.container import ServiceContainer


def get_services(request: Request) -> ServiceContainer:
    return request.app.state.services


def get_ws_services(websocket: WebSocket) -> ServiceContainer:
    return websocket.app.state.services
