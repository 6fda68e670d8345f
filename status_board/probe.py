from __future__ import annotations

import asyncio
import ipaddress
import re
import time
from urllib.parse import urlsplit, urlunsplit

import httpx
import structlog

from status_board.models import ProbeOutcome, ProbeResolution


logger = structlog.get_logger(__name__)

DEFAULT_PROBE_TIMEOUT_MS = 10_000
DEFAULT_PROBE_PATH = "/favicon.ico"


class ProbeTargetError(ValueError):
    """The service URL cannot be turned into a probe target."""


_FORBIDDEN_HOST_CHARS = frozenset("\x00\t\n\r #/:<>?@[\\]^|%\x7f")
_ASCII_LABEL_RE = re.compile(r"[a-z0-9_-]{1,63}")


def _validate_host(host: str, *, bracketed: bool, url: str) -> None:
    if bracketed:
        try:
            ipaddress.IPv6Address(host)
        except ValueError as exc:
            raise ProbeTargetError(f"invalid IPv6 host in service URL {url!r}") from exc
        return

    bad = sorted({ch for ch in host if ch in _FORBIDDEN_HOST_CHARS or ord(ch) < 0x20})
    if bad:
        raise ProbeTargetError(f"forbidden characters {bad!r} in host of service URL {url!r}")

    labels = host[:-1].split(".") if host.endswith(".") else host.split(".")
    for label in labels:
        if label.isascii():
            ok = bool(_ASCII_LABEL_RE.fullmatch(label))
        else:
            try:
                ok = 0 < len(label.encode("idna")) <= 63
            except UnicodeError:
                ok = False
        if not ok:
            raise ProbeTargetError(f"invalid host label {label!r} in service URL {url!r}")


def build_probe_target(url: str, *, now_ms: int | None = None, probe_path: str = DEFAULT_PROBE_PATH) -> str:
    """
    Derive the probe resource from the service URL's origin.

    Only scheme and host[:port] of the service URL are kept; path, query and
    credentials are dropped. A cache-busting token keeps intermediaries from
    answering on the origin's behalf.
    """
    s = str(url or "").strip()
    if not s:
        raise ProbeTargetError("service URL is empty")
    try:
        parts = urlsplit(s)
        # Accessing .port validates it (raises ValueError on garbage).
        parts.port
    except ValueError as exc:
        raise ProbeTargetError(f"invalid service URL {s!r}: {exc}") from exc

    scheme = (parts.scheme or "").lower()
    if scheme not in ("http", "https"):
        raise ProbeTargetError(f"unsupported scheme in service URL {s!r}; expected http or https")
    if not parts.hostname:
        raise ProbeTargetError(f"service URL {s!r} has no host")
    _validate_host(parts.hostname, bracketed="[" in parts.netloc, url=s)

    origin_netloc = parts.netloc.rsplit("@", 1)[-1]
    token = int(now_ms) if now_ms is not None else int(time.time() * 1000)
    path = probe_path if probe_path.startswith("/") else f"/{probe_path}"
    return urlunsplit((scheme, origin_netloc, path, f"_={token}", ""))


async def _load(client: httpx.AsyncClient, target: str, timeout_seconds: float) -> int | None:
    # Any HTTP answer proves the origin is up; the body is never read.
    # The request timeout sits past the probe deadline so the race timer always wins on silence.
    try:
        async with client.stream(
            "GET",
            target,
            follow_redirects=False,
            timeout=timeout_seconds + 1.0,
        ) as resp:
            return resp.status_code
    except httpx.HTTPError as exc:
        logger.debug("Probe load failed", target=target, error=f"{type(exc).__name__}: {exc}")
        return None


async def _race(client: httpx.AsyncClient, target: str, timeout_ms: int) -> ProbeOutcome:
    loop = asyncio.get_running_loop()
    settled: asyncio.Future[ProbeResolution] = loop.create_future()
    started = time.perf_counter()

    # One-shot settlement: whichever side settles first wins, later signals are no-ops.
    def _settle(resolution: ProbeResolution) -> None:
        if not settled.done():
            settled.set_result(resolution)

    def _on_loaded(task: asyncio.Task[int | None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            if not settled.done():
                settled.set_exception(exc)
            return
        _settle(ProbeResolution.REACHABLE)

    timeout_seconds = max(0.0, float(timeout_ms) / 1000.0)
    timer = loop.call_later(timeout_seconds, _settle, ProbeResolution.TIMED_OUT)
    fetch = asyncio.create_task(_load(client, target, timeout_seconds))
    fetch.add_done_callback(_on_loaded)
    try:
        resolution = await settled
    finally:
        timer.cancel()
        if not fetch.done():
            fetch.cancel()

    elapsed_ms = int(round((time.perf_counter() - started) * 1000.0))
    if resolution is ProbeResolution.TIMED_OUT:
        return ProbeOutcome.timeout(elapsed_ms)
    return ProbeOutcome.reached(elapsed_ms)


async def probe(
    url: str,
    timeout_ms: int = DEFAULT_PROBE_TIMEOUT_MS,
    *,
    client: httpx.AsyncClient | None = None,
    probe_path: str = DEFAULT_PROBE_PATH,
) -> ProbeOutcome:
    """
    One timed reachability attempt against the origin of ``url``.

    Raises ProbeTargetError before any I/O if the URL is malformed. Network
    failures never raise: reachable if anything answered before
    ``timeout_ms``, timed out if nothing did. No retries.
    """
    target = build_probe_target(url, probe_path=probe_path)
    if client is not None:
        return await _race(client, target, timeout_ms)
    async with httpx.AsyncClient() as own_client:
        return await _race(own_client, target, timeout_ms)
