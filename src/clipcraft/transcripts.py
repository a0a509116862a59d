"""Transcript resolution: inline text, or fetched from a URL."""

from __future__ import annotations

import logging
import urllib.error
import urllib.request

from clipcraft.errors import TranscriptUnavailableError

logger = logging.getLogger(__name__)


class TranscriptSource:
    """Fetches raw transcript text over HTTP via urllib."""

    def __init__(self, *, timeout: int = 30) -> None:
        self._timeout = timeout

    def fetch(self, url: str) -> str:
        """Fetch the transcript body at ``url``.

        Raises:
            TranscriptUnavailableError: On any network or HTTP failure.
        """
        logger.debug("Fetching transcript from %s", url)
        req = urllib.request.Request(url, headers={"Accept": "text/plain, */*"})
        try:
            with urllib.request.urlopen(req, timeout=self._timeout) as resp:
                charset = resp.headers.get_content_charset() or "utf-8"
                return resp.read().decode(charset, errors="replace")
        except urllib.error.HTTPError as exc:
            raise TranscriptUnavailableError(f"Failed to fetch transcript: {exc.code}") from exc
        except (urllib.error.URLError, TimeoutError, ValueError) as exc:
            raise TranscriptUnavailableError(f"Failed to fetch transcript: {exc}") from exc


def resolve_transcript(
    transcript: str | None,
    transcript_url: str | None,
    source: TranscriptSource,
) -> str:
    """Return non-empty transcript text, fetching it when only a URL is given.

    Inline text wins when both are supplied.

    Raises:
        TranscriptUnavailableError: If nothing resolves to non-empty text.
    """
    if transcript and transcript.strip():
        return transcript
    if not transcript_url:
        raise TranscriptUnavailableError("transcript or transcriptUrl is required")

    text = source.fetch(str(transcript_url))
    if not text.strip():
        raise TranscriptUnavailableError("Fetched transcript is empty")
    return text
