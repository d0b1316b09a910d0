"""
=============================================================================
REMOTE PLAYLIST FILTER (/channels.m3u)
=============================================================================

Fetches a large IPTV playlist and keeps only the channels whose group we
care about, so a TV app gets a short list instead of thousands of
entries.

=============================================================================
EXTENDED M3U
=============================================================================

    #EXTM3U                                              ← mandatory header
    #EXTINF:-1 tvg-id="x" group-title="NFL",Game Pass    ┐ kept: group
    http://example.com/live/nfl1.ts                      ┘ + its URL line
    #EXTINF:-1 group-title="News",Headline News          ┐ dropped
    http://example.com/live/news.ts                      ┘
    #EXTINF:-1 group-title="MLB",Baseball Tonight        ┐ kept
    http://example.com/live/mlb7.ts                      ┘

Rules:
    - First line must start with #EXTM3U, otherwise the document is
      rejected.
    - An #EXTINF line is kept when its group-title is in the wanted set.
    - The line right after a kept #EXTINF is its URL and is kept too.
    - Everything else (other directives, unwanted entries) is dropped.

=============================================================================
FAILURE MODEL
=============================================================================

The fetcher never raises. Network errors, non-200 answers and invalid
documents are logged and reported as None; the command handler turns
None into a 500.

=============================================================================
"""

import logging
import re
from typing import Iterable, Optional

import requests


logger = logging.getLogger(__name__)

M3U_HEADER = "#EXTM3U"
EXTINF_PREFIX = "#EXTINF"

DEFAULT_GROUPS = ("NFL", "MLB")
DEFAULT_TIMEOUT = 10.0

GROUP_TITLE_PATTERN = re.compile(r'group-title="([^"]*)"')


def filter_playlist(text: str, groups: Iterable[str] = DEFAULT_GROUPS) -> Optional[str]:
    """
    Keep the header plus the entries of the wanted groups.

    Args:
        text: Complete extended M3U document.
        groups: group-title values to keep (exact match).

    Returns:
        Filtered document (newline-terminated lines), or None when text
        is not an extended M3U document.
    """
    wanted = frozenset(groups)
    lines = text.splitlines()

    if not lines or not lines[0].strip().startswith(M3U_HEADER):
        return None

    kept = [lines[0]]
    take_next = False

    for line in lines[1:]:
        if line.startswith(EXTINF_PREFIX):
            titles = GROUP_TITLE_PATTERN.findall(line)
            take_next = any(title in wanted for title in titles)
            if take_next:
                kept.append(line)
        elif take_next:
            # URL line of the entry we just kept
            kept.append(line)
            take_next = False

    return "\n".join(kept) + "\n"


class PlaylistFetcher:
    """
    Callable that downloads and filters a remote playlist.

        fetcher = PlaylistFetcher(groups=("NFL",))
        text = fetcher("https://example.com/all.m3u")   # str or None

    A requests.Session is reused across calls so repeated fetches of the
    same host share connections.
    """

    def __init__(
        self,
        groups: Iterable[str] = DEFAULT_GROUPS,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
    ):
        self.groups = tuple(groups)
        self.timeout = timeout
        self.session = session or requests.Session()

    def __call__(self, url: Optional[str]) -> Optional[str]:
        if not url:
            logger.error("No playlist URL configured")
            return None

        try:
            # (connect, read) timeouts
            response = self.session.get(url, timeout=(self.timeout, self.timeout))
        except requests.RequestException as e:
            logger.error(f"Failed to fetch playlist from {url}: {e}")
            return None

        with response:
            if response.status_code != 200:
                logger.error(f"Failed to fetch playlist: {url} answered {response.status_code}")
                return None

            # Playlists are UTF-8 in practice; servers rarely say so
            response.encoding = "utf-8"
            text = response.text

        filtered = filter_playlist(text, self.groups)
        if filtered is None:
            logger.error(f"{url} is not an extended M3U playlist")
            return None

        logger.debug(f"Playlist filtered to {len(filtered.splitlines())} lines")
        return filtered
