"""Model acquisition: probe mirrors, order them, download with fallback.

Every candidate source gets a small ranged GET first; sources that answered
are tried fastest first and the rest are kept as fallbacks. A source is only
abandoned in favour of the next one while no byte of the model has been
received, so a file is never stitched together from two hosts.
"""

from __future__ import annotations

import concurrent.futures as cf
import errno
import logging
import socket
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence, TypeVar
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.exceptions import ConnectTimeoutError, ReadTimeoutError

from config import Settings
from errors import (
    DNS_FAILURE,
    RETRYABLE_NETWORK_CODES,
    TIMEOUT,
    UNREACHABLE,
    DownloadError,
)
from interfaces import StatusSurface
from model_catalog import model_download_urls, require_model_spec
from model_store import ModelStore
from models import DownloadProgress, ProbeResult
from notifier import DOWNLOAD_COMPLETE, DOWNLOAD_ERROR, DOWNLOAD_PROGRESS

logger = logging.getLogger(__name__)

T = TypeVar("T")
ProgressCallback = Callable[[DownloadProgress], None]
SessionFactory = Callable[[bool], requests.Session]

USER_AGENT = "Voix"
CHUNK_SIZE = 1 << 18  # 256 KiB
PROBE_CHUNK_SIZE = 1 << 14
BLOCKED_STATUSES = (403, 404)

# ---------------------------------------------------------------
# Address family selection
# ---------------------------------------------------------------

IPV4_SOURCE_ADDRESS = ("0.0.0.0", 0)


class IPv4Adapter(HTTPAdapter):
    """Binds outgoing sockets to an IPv4 source so IPv6 candidates fail fast."""

    def init_poolmanager(self, *args: Any, **kwargs: Any) -> None:
        kwargs["source_address"] = IPV4_SOURCE_ADDRESS
        super().init_poolmanager(*args, **kwargs)


def make_session(ipv4_only: bool = False) -> requests.Session:
    session = requests.Session()
    if ipv4_only:
        adapter = IPv4Adapter()
        session.mount("https://", adapter)
        session.mount("http://", adapter)
    return session


# ---------------------------------------------------------------
# Failure classification and ordering
# ---------------------------------------------------------------

def _causes(exc: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    stack: list[object] = [exc]
    while stack:
        current = stack.pop()
        if not isinstance(current, BaseException) or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        stack.extend(current.args)
        stack.extend([current.__context__, current.__cause__, getattr(current, "reason", None)])


def classify_network_error(exc: BaseException) -> Optional[str]:
    """Map a requests/urllib3/socket failure to timeout, unreachable or dns."""
    causes = list(_causes(exc))
    if any(isinstance(cause, socket.gaierror) for cause in causes):
        return DNS_FAILURE
    for cause in causes:
        if isinstance(cause, (requests.Timeout, ConnectTimeoutError, ReadTimeoutError, socket.timeout)):
            return TIMEOUT
        if isinstance(cause, OSError) and cause.errno in (errno.ENETUNREACH, errno.EHOSTUNREACH):
            return UNREACHABLE
    return None


def _network_error(exc: BaseException, started: bool) -> DownloadError:
    return DownloadError(str(exc), reason=classify_network_error(exc), download_started=started)


def host_rank(url: str, host_order: Sequence[str]) -> int:
    host = urlparse(url).hostname or ""
    try:
        return list(host_order).index(host)
    except ValueError:
        return len(host_order) + 1


def order_sources(
    urls: Sequence[str],
    results: Iterable[ProbeResult],
    host_order: Sequence[str],
) -> list[str]:
    """Order download sources from probe results.

    With at least one successful probe the fastest sources come first,
    followed by failed and then unanswered sources. Without any success,
    transient failures and unanswered sources come before sources that
    answered 403/404.
    """
    position = {url: index for index, url in enumerate(urls)}
    by_url = {result.url: result for result in results}

    def ranked(items: Iterable[str]) -> list[str]:
        return sorted(items, key=lambda url: (host_rank(url, host_order), position.get(url, len(position))))

    succeeded = sorted(
        (result for result in by_url.values() if result.ok),
        key=lambda result: (-result.kbps, position.get(result.url, len(position))),
    )
    failed = [url for url in urls if url in by_url and not by_url[url].ok]
    remaining = [url for url in urls if url not in by_url]

    if succeeded:
        return [result.url for result in succeeded] + ranked(failed) + ranked(remaining)

    blocked = [url for url in failed if by_url[url].reason in BLOCKED_STATUSES]
    transient = [url for url in failed if by_url[url].reason not in BLOCKED_STATUSES]
    return ranked(transient) + ranked(remaining) + ranked(blocked)


def _hostnames(urls: Iterable[str]) -> str:
    return " > ".join(urlparse(url).hostname or url for url in urls)


def _content_length(headers: dict) -> Optional[int]:
    raw = headers.get("Content-Length") or headers.get("content-length")
    if raw and str(raw).isdigit():
        return int(raw)
    return None


class _ProgressLog:
    """Throttles diagnostic progress lines: 5 % steps, 25 MB steps or 5 s."""

    def __init__(self, model_id: str, total_bytes: Optional[int], clock: Callable[[], float] = time.monotonic) -> None:
        self._model_id = model_id
        self._total = total_bytes
        self._clock = clock
        self._last_at = clock()
        self._last_percent = 0
        self._last_bytes = 0

    def update(self, downloaded: int) -> None:
        now = self._clock()
        if self._total:
            percent = int(downloaded * 100 / self._total)
            if percent >= self._last_percent + 5 or now - self._last_at > 5:
                self._last_percent = percent
                self._last_at = now
                logger.info("Progress %s: %d%%", self._model_id, percent)
        elif downloaded >= self._last_bytes + 25 * 1024 * 1024 or now - self._last_at > 5:
            self._last_bytes = downloaded
            self._last_at = now
            logger.info("Progress %s: %dMB", self._model_id, downloaded // (1024 * 1024))


@dataclass
class _ActiveDownload:
    future: cf.Future
    callbacks: list[ProgressCallback] = field(default_factory=list)


class ModelDownloader:
    def __init__(
        self,
        store: ModelStore,
        settings: Settings,
        notifier: Optional[StatusSurface] = None,
        session_factory: SessionFactory = make_session,
        max_workers: int = 2,
    ) -> None:
        self._store = store
        self._settings = settings
        self._notifier = notifier
        self._session_factory = session_factory
        self._executor = cf.ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="model-download")
        self._registry: dict[str, _ActiveDownload] = {}
        self._registry_lock = threading.RLock()
        self._listeners: list[ProgressCallback] = []

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def add_progress_listener(self, listener: ProgressCallback) -> None:
        with self._registry_lock:
            self._listeners.append(listener)

    def remove_progress_listener(self, listener: ProgressCallback) -> None:
        with self._registry_lock:
            if listener in self._listeners:
                self._listeners.remove(listener)

    def is_downloading(self, model_id: str) -> bool:
        with self._registry_lock:
            return model_id in self._registry

    def active_downloads(self) -> list[str]:
        with self._registry_lock:
            return list(self._registry)

    def download_async(self, model_id: str, on_progress: Optional[ProgressCallback] = None) -> cf.Future:
        """Start (or join) the download of ``model_id``."""
        spec = require_model_spec(model_id)
        with self._registry_lock:
            active = self._registry.get(spec.id)
            if active is not None:
                if on_progress is not None:
                    active.callbacks.append(on_progress)
                return active.future

            final_path = self._store.primary_path(spec.id)
            if final_path.exists():
                logger.info("Already installed: %s -> %s", spec.id, final_path)
                done: cf.Future = cf.Future()
                done.set_result(None)
                return done

            active = _ActiveDownload(future=cf.Future())
            if on_progress is not None:
                active.callbacks.append(on_progress)
            self._registry[spec.id] = active
            self._executor.submit(self._run, spec.id, active)
            return active.future

    def download(
        self,
        model_id: str,
        on_progress: Optional[ProgressCallback] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self.download_async(model_id, on_progress).result(timeout=timeout)

    def probe_and_order(self, urls: Sequence[str]) -> list[str]:
        urls = list(urls)
        if len(urls) <= 1 or self._settings.skip_probe:
            return urls

        settings = self._settings
        logger.info(
            "Probe start (%d sources, %d bytes max, %dms timeout, %dms max wait)",
            len(urls),
            settings.probe_bytes,
            settings.probe_timeout_s * 1000,
            settings.probe_max_wait_s * 1000,
        )
        executor = cf.ThreadPoolExecutor(max_workers=len(urls), thread_name_prefix="model-probe")
        try:
            futures = [executor.submit(self._probe, url) for url in urls]
            done, pending = cf.wait(futures, timeout=settings.probe_max_wait_s or None)
        finally:
            # Unfinished probes are abandoned; their own timeout ends them.
            executor.shutdown(wait=False, cancel_futures=True)

        if pending:
            logger.info(
                "Probe early stop after %dms (%d/%d finished)",
                settings.probe_max_wait_s * 1000,
                len(done),
                len(urls),
            )
        results = [future.result() for future in done]
        ordered = order_sources(urls, results, settings.fallback_hosts)
        logger.info("Probe order: %s", _hostnames(ordered))
        return ordered

    def close(self) -> None:
        self._executor.shutdown(wait=False)

    # ------------------------------------------------------------------
    # Download flow
    # ------------------------------------------------------------------

    def _run(self, model_id: str, active: _ActiveDownload) -> None:
        if not active.future.set_running_or_notify_cancel():
            self._settle(model_id, active)
            return
        try:
            self._download_model(model_id, active)
        except Exception as exc:
            # Waiters must never observe the outcome while the entry is still registered.
            self._settle(model_id, active)
            active.future.set_exception(exc)
        else:
            self._settle(model_id, active)
            active.future.set_result(None)

    def _settle(self, model_id: str, active: _ActiveDownload) -> None:
        with self._registry_lock:
            if self._registry.get(model_id) is active:
                del self._registry[model_id]

    def _download_model(self, model_id: str, active: _ActiveDownload) -> None:
        self._store.ensure_dir()
        final_path = self._store.primary_path(model_id)
        temp_path = self._store.partial_path(model_id)
        urls = model_download_urls(model_id, self._settings.base_urls)
        logger.info("Start download: %s -> %s", model_id, final_path)
        try:
            self._download_with_fallbacks(urls, temp_path, model_id, active)
            if final_path.exists():
                final_path.unlink()
            temp_path.rename(final_path)
        except Exception as exc:
            logger.error("Download failed: %s: %s", model_id, exc)
            try:
                if temp_path.exists():
                    temp_path.unlink()
            except OSError:
                logger.warning("Could not remove %s", temp_path)
            self._send(DOWNLOAD_ERROR, {"modelId": model_id, "message": str(exc)})
            raise
        logger.info("Download complete: %s", model_id)
        self._send(DOWNLOAD_COMPLETE, {"modelId": model_id})

    def _download_with_fallbacks(
        self, urls: Sequence[str], dest: Path, model_id: str, active: _ActiveDownload
    ) -> None:
        ordered = self.probe_and_order(urls)
        last_error: Optional[DownloadError] = None
        for index, url in enumerate(ordered, start=1):
            logger.info("Attempt %d/%d: %s", index, len(ordered), url)
            try:
                self._with_family_fallback(
                    lambda ipv4_only: self._download_to_file(url, dest, model_id, active, ipv4_only)
                )
                return
            except DownloadError as exc:
                last_error = exc
                if exc.retryable:
                    logger.warning("Retrying with next source due to %s", exc.failure)
                    continue
                raise
        raise last_error or DownloadError("Failed to download model")

    def _with_family_fallback(self, attempt: Callable[[bool], T]) -> T:
        try:
            return attempt(True)
        except DownloadError as exc:
            if exc.download_started or exc.reason not in RETRYABLE_NETWORK_CODES:
                raise
            logger.info("Retrying with the default address family after %s", exc.reason)
        return attempt(False)

    def _download_to_file(
        self, url: str, dest: Path, model_id: str, active: _ActiveDownload, ipv4_only: bool = False
    ) -> None:
        started = False
        logger.info("Connect (%s): %s", "ipv4" if ipv4_only else "auto", urlparse(url).hostname)
        timeout = (self._settings.connect_timeout_s, self._settings.connect_timeout_s)
        session = self._session_factory(ipv4_only)
        try:
            session.headers.update({"User-Agent": USER_AGENT})
            with session.get(url, stream=True, timeout=timeout, allow_redirects=True) as response:
                if response.history:
                    logger.info("Redirect -> %s", response.url)
                status = response.status_code
                if status != 200:
                    raise DownloadError(f"Failed to download model ({status})", status_code=status)

                total = _content_length(response.headers)
                progress_log = _ProgressLog(model_id, total)
                downloaded = 0
                with open(dest, "wb") as handle:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        if not chunk:
                            continue
                        started = True
                        handle.write(chunk)
                        downloaded += len(chunk)
                        self._emit_progress(
                            active,
                            DownloadProgress(
                                model_id=model_id,
                                downloaded_bytes=downloaded,
                                total_bytes=total,
                                percent=downloaded / total if total else None,
                            ),
                        )
                        progress_log.update(downloaded)
        except DownloadError:
            raise
        except (requests.RequestException, OSError) as exc:
            raise _network_error(exc, started) from exc
        finally:
            session.close()

    # ------------------------------------------------------------------
    # Probing
    # ------------------------------------------------------------------

    def _probe(self, url: str) -> ProbeResult:
        try:
            kbps, duration_ms = self._with_family_fallback(lambda ipv4_only: self._probe_once(url, ipv4_only))
        except DownloadError as exc:
            logger.warning("Probe failed (%s) -> %s", exc.failure or "unknown", url)
            return ProbeResult(url=url, ok=False, reason=exc.failure)
        except Exception:
            logger.exception("Probe crashed -> %s", url)
            return ProbeResult(url=url, ok=False, reason="unknown")
        logger.info("Probe ok: %d KB/s, %dms -> %s", kbps, duration_ms, url)
        return ProbeResult(url=url, ok=True, kbps=kbps, duration_ms=duration_ms)

    def _probe_once(self, url: str, ipv4_only: bool = False) -> tuple[float, int]:
        probe_bytes = self._settings.probe_bytes
        timeout = (self._settings.probe_timeout_s, self._settings.probe_timeout_s)
        received = 0
        started_at = time.monotonic()
        session = self._session_factory(ipv4_only)
        try:
            headers = {"Range": f"bytes=0-{probe_bytes - 1}", "User-Agent": USER_AGENT}
            with session.get(url, headers=headers, stream=True, timeout=timeout, allow_redirects=True) as response:
                status = response.status_code
                if status >= 400:
                    raise DownloadError(f"Probe failed ({status})", status_code=status)
                for chunk in response.iter_content(chunk_size=PROBE_CHUNK_SIZE):
                    received += len(chunk)
                    if received >= probe_bytes:
                        break
        except DownloadError:
            raise
        except (requests.RequestException, OSError) as exc:
            raise _network_error(exc, started=False) from exc
        finally:
            session.close()
        duration_s = max(0.001, time.monotonic() - started_at)
        return (received / 1024) / duration_s, int(duration_s * 1000)

    # ------------------------------------------------------------------
    # Progress fan-out
    # ------------------------------------------------------------------

    def _emit_progress(self, active: _ActiveDownload, progress: DownloadProgress) -> None:
        with self._registry_lock:
            receivers = list(active.callbacks) + list(self._listeners)
        # A failing receiver never aborts the shared transfer.
        for receiver in receivers:
            try:
                receiver(progress)
            except Exception:
                logger.exception("Progress callback failed for %s", progress.model_id)
        self._send(DOWNLOAD_PROGRESS, progress.to_payload())

    def _send(self, channel: str, payload: object) -> None:
        if self._notifier is not None:
            self._notifier.send(channel, payload)
