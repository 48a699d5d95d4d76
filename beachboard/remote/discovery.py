"""mDNS advertisement and browsing for the board document service."""

from __future__ import annotations

import logging
import socket
import threading
from dataclasses import dataclass, field
from typing import Any

from .types import PROTOCOL_VERSION

DEFAULT_SERVICE_TYPE = "_beachboard._tcp.local."

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BoardService:
    name: str
    port: int
    host: str = ""
    address: bytes | None = None
    properties: dict[bytes, bytes | None] = field(default_factory=dict)

    @property
    def url_host(self) -> str:
        if self.address is not None and len(self.address) == 4:
            return socket.inet_ntoa(self.address)
        return self.host.rstrip(".")

    @property
    def protocol_version(self) -> str | None:
        raw = self.properties.get(b"protocol_version")
        return raw.decode("utf-8", "replace") if raw else None


def service_addresses(services: list[BoardService]) -> list[str]:
    """``host:port`` for each usable service, in browse order, without duplicates."""
    addresses: list[str] = []
    for service in services:
        if not service.port or not service.url_host:
            continue
        if service.protocol_version not in (None, PROTOCOL_VERSION):
            logger.debug("skipping %s: protocol %s", service.name, service.protocol_version)
            continue
        addresses.append(f"{service.url_host}:{service.port}")
    return list(dict.fromkeys(addresses))


class _BrowseCollector:
    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        self.services: list[BoardService] = []
        self._lock = threading.Lock()

    def add_service(self, zc: Any, service_type: str, name: str) -> None:
        info = zc.get_service_info(service_type, name, timeout=self.timeout_ms)
        if info is None:
            return
        service = BoardService(
            name=name,
            port=int(info.port or 0),
            host=info.server or "",
            address=info.addresses[0] if info.addresses else None,
            properties=dict(info.properties or {}),
        )
        with self._lock:
            self.services.append(service)

    def update_service(self, zc: Any, service_type: str, name: str) -> None:
        return

    def remove_service(self, zc: Any, service_type: str, name: str) -> None:
        return


def discover_services(
    *,
    service_type: str = DEFAULT_SERVICE_TYPE,
    timeout_s: float = 1.5,
) -> list[BoardService]:
    try:
        from zeroconf import ServiceBrowser, Zeroconf  # type: ignore[import-not-found]
    except ImportError:
        logger.warning("zeroconf is not installed; mDNS discovery disabled")
        return []

    collector = _BrowseCollector(int(timeout_s * 1000))
    zc = Zeroconf()
    browser = ServiceBrowser(zc, service_type, collector)  # type: ignore[arg-type]
    try:
        threading.Event().wait(timeout_s)
    finally:
        browser.cancel()
        zc.close()
    logger.debug("mdns browse for %s found %d services", service_type, len(collector.services))
    return list(collector.services)


def _lan_address() -> bytes | None:
    # No packet is sent; connecting a UDP socket only picks the outgoing interface.
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
            sock.connect(("10.255.255.255", 1))
            ip = sock.getsockname()[0]
    except OSError:
        return None
    if ip.startswith("127."):
        return None
    return socket.inet_aton(ip)


class ServiceAdvertisement:
    """A registered mDNS record; ``close()`` withdraws it."""

    def __init__(self, zeroconf: Any, info: Any) -> None:
        self._zeroconf = zeroconf
        self.info = info

    def close(self) -> None:
        try:
            self._zeroconf.unregister_service(self.info)
        finally:
            self._zeroconf.close()


def advertise_mdns(
    *,
    port: int,
    service_type: str = DEFAULT_SERVICE_TYPE,
    name: str | None = None,
) -> ServiceAdvertisement | None:
    try:
        from zeroconf import ServiceInfo, Zeroconf  # type: ignore[import-not-found]
    except ImportError:
        logger.warning("zeroconf is not installed; not advertising the board service")
        return None

    address = _lan_address()
    service_name = name or f"{socket.gethostname()}.{service_type}"
    info = ServiceInfo(
        service_type,
        service_name,
        port=port,
        properties={b"protocol_version": PROTOCOL_VERSION.encode()},
        addresses=[address] if address else [],
    )
    zc = Zeroconf()
    zc.register_service(info)
    logger.info("advertising %s on port %s", service_name, port)
    return ServiceAdvertisement(zc, info)
