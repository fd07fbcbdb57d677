"""
POS Django Adapter Wiring
=========================
Builds the backend gateway and one BillingSession per terminal.

This module is adapter-only glue:
- no engine logic
- sessions live in process memory, one per terminal id
- each session has its own lock; requests for a terminal run one at a time
- the post-sale reset runs on a timer thread after POS_RESET_DELAY seconds,
  under the same lock
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Optional

from django.conf import settings as django_settings

from core.config import PosSettings, load_settings
from core.time.clock import Clock
from engines.billing.services import BillingSession, Scheduler
from integration.adapters import BackendGateway
from integration.outbound import BackendClient, InMemoryBackend

BACKEND_MEMORY = "memory"
BACKEND_HTTP = "http"

_REGISTRY_LOCK = threading.Lock()
_SETTINGS: Optional[PosSettings] = None
_GATEWAY: Optional[BackendGateway] = None
_CLOCK: Optional[Clock] = None
_TERMINALS: dict[str, "TerminalSession"] = {}


@dataclass
class TerminalSession:
    session: BillingSession
    lock: threading.Lock = field(default_factory=threading.Lock)


def deferred_scheduler(lock: threading.Lock) -> Scheduler:
    """
    Run the callback after delay_seconds on a daemon timer, holding lock.

    A zero delay runs inline: the caller already holds the lock.
    """
    def schedule(delay_seconds: float, callback) -> None:
        if delay_seconds <= 0:
            callback()
            return

        def run() -> None:
            with lock:
                callback()

        timer = threading.Timer(delay_seconds, run)
        timer.daemon = True
        timer.start()

    return schedule


def _create_gateway(pos_settings: PosSettings) -> BackendGateway:
    backend = getattr(django_settings, "POS_BACKEND", BACKEND_MEMORY)
    if backend == BACKEND_HTTP:
        return BackendClient.from_settings(pos_settings)
    if backend == BACKEND_MEMORY:
        return InMemoryBackend()
    raise ValueError(f"POS_BACKEND must be '{BACKEND_HTTP}' or '{BACKEND_MEMORY}', got {backend!r}.")


def pos_settings() -> PosSettings:
    global _SETTINGS
    with _REGISTRY_LOCK:
        if _SETTINGS is None:
            _SETTINGS = load_settings()
        return _SETTINGS


def build_gateway() -> BackendGateway:
    """
    Lazy singleton gateway shared by every terminal.
    """
    global _GATEWAY
    current_settings = pos_settings()
    with _REGISTRY_LOCK:
        if _GATEWAY is None:
            _GATEWAY = _create_gateway(current_settings)
        return _GATEWAY


def terminal_session(terminal_id: str) -> TerminalSession:
    gateway = build_gateway()
    current_settings = pos_settings()
    with _REGISTRY_LOCK:
        terminal = _TERMINALS.get(terminal_id)
        if terminal is None:
            lock = threading.Lock()
            terminal = TerminalSession(
                session=BillingSession(
                    gateway,
                    settings=current_settings,
                    clock=_CLOCK,
                    scheduler=deferred_scheduler(lock),
                    cashier=terminal_id,
                ),
                lock=lock,
            )
            _TERMINALS[terminal_id] = terminal
        return terminal


def configure(
    *,
    gateway: Optional[BackendGateway] = None,
    settings: Optional[PosSettings] = None,
    clock: Optional[Clock] = None,
) -> None:
    """Replace the wiring (local runs and tests). Drops every open session."""
    global _GATEWAY, _SETTINGS, _CLOCK
    with _REGISTRY_LOCK:
        _GATEWAY = gateway
        _SETTINGS = settings
        _CLOCK = clock
        _TERMINALS.clear()
