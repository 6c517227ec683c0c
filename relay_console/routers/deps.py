from fastapi import Request

from relay_console.services.console import RelayConsole


def get_console(request: Request) -> RelayConsole:
    return request.app.state.console
