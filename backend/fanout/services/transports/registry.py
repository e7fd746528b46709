"""Registry of push transports keyed by Subscription.transport. Add new adapters here."""
import logging
import threading
from typing import Callable

from fanout.config import Settings
from fanout.core.errors import TransportConfigError
from fanout.services.transports.base import TransportAdapter

logger = logging.getLogger(__name__)

AdapterFactory = Callable[[], TransportAdapter]


class AdapterRegistry:
    """
    Builds each adapter on first use and caches it, or caches the TransportConfigError its
    constructor raised so a misconfigured transport fails fast on every dispatch without retrying
    the build. Other transports are unaffected.
    """

    def __init__(self) -> None:
        self._factories: dict[str, AdapterFactory] = {}
        self._adapters: dict[str, TransportAdapter] = {}
        self._errors: dict[str, TransportConfigError] = {}
        self._lock = threading.Lock()

    def register(self, name: str, adapter: TransportAdapter) -> None:
        """Register a ready adapter (e.g. a fake in tests)."""
        with self._lock:
            self._adapters[name] = adapter
            self._errors.pop(name, None)
        logger.info("Registered push transport: %s", name)

    def register_factory(self, name: str, factory: AdapterFactory) -> None:
        with self._lock:
            self._factories[name] = factory
            self._adapters.pop(name, None)
            self._errors.pop(name, None)

    def get(self, name: str) -> TransportAdapter:
        """Adapter for a transport. Raises TransportConfigError if unknown or misconfigured."""
        with self._lock:
            if name in self._adapters:
                return self._adapters[name]
            if name in self._errors:
                raise self._errors[name]
            factory = self._factories.get(name)
            if factory is None:
                err = TransportConfigError(name, f"Unknown transport. Available: {self.list_transports()}")
                self._errors[name] = err
                raise err
            try:
                adapter = factory()
            except TransportConfigError as e:
                logger.error("Push transport %s unavailable: %s", name, e)
                self._errors[name] = e
                raise
            self._adapters[name] = adapter
            logger.info("Initialized push transport: %s", name)
            return adapter

    def list_transports(self) -> list[str]:
        return sorted(set(self._factories) | set(self._adapters))


def build_default_registry(settings: Settings) -> AdapterRegistry:
    from fanout.core.constants import TRANSPORT_MOBILE_TOKEN, TRANSPORT_RELAY_SERVICE, TRANSPORT_WEBPUSH
    from fanout.services.transports.apns import ApnsAdapter
    from fanout.services.transports.onesignal import OneSignalAdapter
    from fanout.services.transports.webpush import WebPushAdapter

    registry = AdapterRegistry()
    registry.register_factory(TRANSPORT_WEBPUSH, lambda: WebPushAdapter(settings))
    registry.register_factory(TRANSPORT_MOBILE_TOKEN, lambda: ApnsAdapter(settings))
    registry.register_factory(TRANSPORT_RELAY_SERVICE, lambda: OneSignalAdapter(settings))
    return registry
