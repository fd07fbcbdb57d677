"""
POS Django HTTP adapter.
Thin framework glue over core/http_api handlers.
"""

from adapters.django_api.wiring import (
    TerminalSession,
    build_gateway,
    configure,
    deferred_scheduler,
    pos_settings,
    terminal_session,
)

__all__ = [
    "TerminalSession",
    "build_gateway",
    "configure",
    "deferred_scheduler",
    "pos_settings",
    "terminal_session",
]
