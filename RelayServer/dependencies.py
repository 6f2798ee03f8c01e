# RelayServer/dependencies.py
from fastapi import Depends, HTTPException, Request

from core.context import RelayContext
from core.errors import AgentUnavailable, RelayError

def get_relay(request: Request) -> RelayContext:
    return request.app.state.relay

def http_error(exc: RelayError) -> HTTPException:
    return HTTPException(status_code=exc.status_code, detail=exc.detail)

def require_agent(relay: RelayContext = Depends(get_relay)) -> RelayContext:
    """503 before anything is sent when no agent is connected."""
    if not relay.channel.is_open:
        raise http_error(AgentUnavailable())
    return relay
