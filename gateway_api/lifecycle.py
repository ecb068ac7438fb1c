"""Estado de ciclo de vida de los servicios en memoria."""

from __future__ import annotations

from enum import Enum

from .errors import ServiceNotReadyError


class ServiceState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


class LifecycleMixin:
    """Estado explícito inicializado/listo.

    Las llamadas antes de READY fallan con ServiceNotReadyError; nunca se
    re-ejecuta la inicialización en línea.
    """

    _state: ServiceState = ServiceState.UNINITIALIZED

    @property
    def state(self) -> ServiceState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state == ServiceState.READY

    def _require_ready(self) -> None:
        if self._state != ServiceState.READY:
            raise ServiceNotReadyError(type(self).__name__, self._state.value)
