"""Stream remote binaries to disk with timeouts, cancellation and progress."""

from __future__ import annotations

import logging
import threading
from http.client import HTTPException
from pathlib import Path
from typing import Callable, Protocol
from urllib.error import HTTPError, URLError
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit
from urllib.request import Request, urlopen

from app.version import build_user_agent
from services.online_patch.constants import HTML_CONTENT_TYPES, HTML_SNIPPET_LENGTH
from services.online_patch.models import (
    DownloadCancelledError,
    DownloadTimeoutError,
    NetworkError,
    UnexpectedContentError,
)

_LOGGER = logging.getLogger(__name__)

# Called with (chunk_length, file_total_or_None) for every chunk written.
BytesCallback = Callable[[int, "int | None"], None]


class CancelToken:
    """Cooperative cancellation signal checked between download chunks."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise DownloadCancelledError("Download cancelled")


class ResourceFetcher(Protocol):
    """Protocol describing how the engine reaches remote binaries."""

    def download(
        self,
        url: str,
        destination: Path,
        *,
        timeout: float | None = None,
        on_bytes: BytesCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> int:
        """Stream ``url`` into ``destination`` and return the bytes written."""

    def content_length(self, url: str, *, timeout: float | None = None) -> int | None:
        """Return the advertised size of ``url`` or ``None`` when unknown."""


class UrllibResourceFetcher:
    """Fetch binaries over HTTP(S) using :func:`urllib.request.urlopen`."""

    def __init__(
        self,
        *,
        timeout: float = 45.0,
        head_timeout: float | None = None,
        chunk_size: int = 65536,
        user_agent: str | None = None,
    ) -> None:
        self._timeout = timeout
        self._head_timeout = head_timeout if head_timeout is not None else timeout
        self._chunk_size = max(1, int(chunk_size))
        self._user_agent = user_agent

    def download(
        self,
        url: str,
        destination: Path,
        *,
        timeout: float | None = None,
        on_bytes: BytesCallback | None = None,
        cancel_token: CancelToken | None = None,
    ) -> int:
        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        _LOGGER.info("Downloading %s to %s", url, destination)

        completed = False
        try:
            written = self._stream_to_file(
                url,
                destination,
                timeout if timeout is not None else self._timeout,
                on_bytes,
                cancel_token,
            )
            completed = True
        finally:
            if not completed:
                discard_partial(destination)

        _LOGGER.debug("Downloaded %d bytes to %s", written, destination)
        return written

    def content_length(self, url: str, *, timeout: float | None = None) -> int | None:
        request = Request(url, headers=self._headers(), method="HEAD")
        try:
            with urlopen(  # nosec - HTTPS download hosts supplied by the manifest
                request, timeout=timeout if timeout is not None else self._head_timeout
            ) as response:
                status = getattr(response, "status", None) or 200
                if status >= 400:
                    return None
                return parse_content_length(response.headers.get("Content-Length"))
        except (OSError, HTTPException, ValueError) as exc:
            _LOGGER.debug("HEAD request for %s failed: %s", url, exc)
            return None

    def _stream_to_file(
        self,
        url: str,
        destination: Path,
        timeout: float,
        on_bytes: BytesCallback | None,
        cancel_token: CancelToken | None,
    ) -> int:
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()

        response = self._open(url, timeout)
        with response:
            status = getattr(response, "status", None) or 200
            if status >= 400:
                raise NetworkError(f"Failed to download file ({status}) from {url}")

            content_type = (response.headers.get("Content-Type") or "").lower()
            if any(marker in content_type for marker in HTML_CONTENT_TYPES):
                raise UnexpectedContentError(_html_error_message(url, response))

            file_total = parse_content_length(response.headers.get("Content-Length"))
            written = 0
            with destination.open("wb") as sink:
                while True:
                    if cancel_token is not None:
                        cancel_token.raise_if_cancelled()
                    chunk = self._read_chunk(response, url, timeout)
                    if not chunk:
                        break
                    sink.write(chunk)
                    written += len(chunk)
                    if on_bytes is not None:
                        on_bytes(len(chunk), file_total)

        if file_total is not None and written < file_total:
            raise NetworkError(
                f"Download of {url} ended early: received {written} of {file_total} bytes"
            )
        return written

    def _read_chunk(self, response, url: str, timeout: float) -> bytes:
        # Only socket-side failures are network errors; disk errors from the
        # caller's writes propagate unchanged.
        try:
            return response.read(self._chunk_size)
        except TimeoutError as exc:
            raise DownloadTimeoutError(
                f"Download of {url} stalled for more than {timeout:g}s"
            ) from exc
        except (OSError, HTTPException) as exc:
            raise NetworkError(f"Download of {url} was interrupted: {exc}") from exc

    def _open(self, url: str, timeout: float):
        request = Request(url, headers=self._headers())
        try:
            return urlopen(request, timeout=timeout)  # nosec - HTTPS download hosts
        except HTTPError as exc:
            raise NetworkError(f"Failed to download file ({exc.code}) from {url}") from exc
        except TimeoutError as exc:
            raise DownloadTimeoutError(
                f"Connecting to {url} timed out after {timeout:g}s"
            ) from exc
        except URLError as exc:
            if isinstance(exc.reason, TimeoutError):
                raise DownloadTimeoutError(
                    f"Connecting to {url} timed out after {timeout:g}s"
                ) from exc
            raise NetworkError(f"Failed to reach {url}: {exc.reason}") from exc
        except (OSError, HTTPException) as exc:
            raise NetworkError(f"Failed to reach {url}: {exc}") from exc

    def _headers(self) -> dict[str, str]:
        return {"User-Agent": self._user_agent or build_user_agent()}


def with_cache_buster(url: str, cache_key: str, *, param: str = "cb") -> str:
    """Return ``url`` with ``param`` set to ``cache_key``, replacing any old value."""

    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        separator = "&" if "?" in url else "?"
        return f"{url}{separator}{param}={quote(cache_key, safe='')}"
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != param]
    query.append((param, cache_key))
    return urlunsplit(parts._replace(query=urlencode(query)))


def parse_content_length(raw: str | None) -> int | None:
    if raw is None:
        return None
    try:
        value = int(str(raw).strip())
    except ValueError:
        return None
    return value if value > 0 else None


def discard_partial(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        return
    except OSError:
        _LOGGER.warning("Unable to remove partial download at %s", path, exc_info=True)


def _html_error_message(url: str, response) -> str:
    message = (
        "Download returned HTML instead of a binary. This usually means a CDN cache "
        f"or error page was served. URL: {url}"
    )
    try:
        snippet = response.read(HTML_SNIPPET_LENGTH).decode("utf-8", errors="replace")
    except (OSError, HTTPException):
        snippet = ""
    if snippet:
        message += f" (starts with: {snippet!r})"
    return message


__all__ = [
    "BytesCallback",
    "CancelToken",
    "ResourceFetcher",
    "UrllibResourceFetcher",
    "discard_partial",
    "parse_content_length",
    "with_cache_buster",
]
