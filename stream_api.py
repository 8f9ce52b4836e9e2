"""
Stream API client - resolves a media title into a playable stream descriptor
Shared by the gateway (relay mode) and the player controller (direct mode)
"""
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import quote

import requests

logger = logging.getLogger(__name__)

# Configuration
DEFAULT_BASE_URL = "https://u-1-1azw.onrender.com"
STREAM_API_BASE_URL = os.environ.get('STREAM_API_BASE_URL', DEFAULT_BASE_URL)
GET_STREAM_PATH = "/api/get-stream"
PROXY_STREAM_PATH = "/api/proxy-get-stream"

# No timeout unless configured
_timeout = os.environ.get('STREAM_API_TIMEOUT')
STREAM_API_TIMEOUT = float(_timeout) if _timeout else None

REQUIRED_HEADERS = ('Referer', 'User-Agent')


class StreamAPIError(Exception):
    """The stream API could not be reached or answered with something that is not JSON"""


class InvalidStreamError(StreamAPIError):
    """A successful response without a playable URL or its headers"""


@dataclass(frozen=True)
class StreamDescriptor:
    """A playable manifest URL plus the headers its origin expects."""
    success: bool
    video_id: str
    m3u8_url: str
    headers: Dict[str, str] = field(default_factory=dict)
    error: Optional[str] = None

    @classmethod
    def from_json(cls, data):
        """Build a descriptor from a successful API payload.

        Raises InvalidStreamError when the URL or one of the required
        headers is missing or empty, so nothing unplayable reaches a widget.
        """
        if not isinstance(data, dict) or not data.get('success'):
            raise InvalidStreamError("Stream response was not successful")

        headers = data.get('headers') or {}
        if not isinstance(headers, dict):
            headers = {}
        if not data.get('m3u8_url') or not all(headers.get(h) for h in REQUIRED_HEADERS):
            raise InvalidStreamError("Stream response is missing a playable URL or headers")

        return cls(
            success=True,
            video_id=str(data.get('video_id', '')),
            m3u8_url=data['m3u8_url'],
            headers=dict(headers),
        )

    @property
    def referer(self):
        return self.headers['Referer']

    @property
    def user_agent(self):
        return self.headers['User-Agent']

    def source(self):
        """Widget source: the manifest URI and the two headers the origin checks"""
        return {
            'uri': self.m3u8_url,
            'headers': {
                'Referer': self.referer,
                'User-Agent': self.user_agent,
            },
        }


def build_stream_url(base_url, title, path=GET_STREAM_PATH):
    """Upstream URL for a title, with the title percent-encoded"""
    return f"{base_url.rstrip('/')}{path}?title={quote(title, safe='')}"


class StreamAPIClient:
    """Thin wrapper over requests for the get-stream endpoint.

    Point ``path`` at PROXY_STREAM_PATH and ``base_url`` at a running gateway
    to resolve titles through the relay instead of the upstream directly.
    """

    def __init__(self, base_url=None, path=GET_STREAM_PATH, timeout=None, session=None):
        self.base_url = (base_url or STREAM_API_BASE_URL).rstrip('/')
        self.path = path
        self.timeout = timeout if timeout is not None else STREAM_API_TIMEOUT
        self.session = session or requests.Session()

    def url_for(self, title):
        return build_stream_url(self.base_url, title, self.path)

    def get_stream(self, title):
        """Fetch the raw JSON payload for a title.

        The payload is returned untouched, including ``success: false``
        answers. Transport failures and non-JSON bodies raise StreamAPIError
        carrying the underlying message.
        """
        url = self.url_for(title)
        logger.info(f"Resolving '{title}' -> {url}")

        try:
            resp = self.session.get(url, timeout=self.timeout)
            data = resp.json()
        except requests.exceptions.RequestException as e:
            logger.error(f"Stream API request failed: {e}")
            raise StreamAPIError(str(e)) from e
        except ValueError as e:
            logger.error(f"Stream API returned a non-JSON body: {e}")
            raise StreamAPIError(str(e)) from e

        logger.debug(f"Stream API response ({resp.status_code}): {data}")
        return data
