"""
Client for the downstream service. One GET per call, no retries.
"""
import logging
import time

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
# A read blocks until the whole chunk has arrived, so the deadline can only
# be checked between chunks.
READ_CHUNK_SIZE = 1


class DownstreamError(Exception):
    """Any failure reaching or reading the downstream service."""


class DownstreamClient:
    def __init__(self, endpoint, timeout=DEFAULT_TIMEOUT, session=None):
        self.endpoint = endpoint
        self.timeout = timeout
        # requests.Session is not thread-safe; the module API is.
        self.session = session or requests

    def fetch(self, headers=None):
        """Return the full downstream body.

        `timeout` bounds the whole call, body download included, not just
        each socket read. The status code is not checked, so an error page is
        returned like any other body. Every failure is raised as
        DownstreamError.
        """
        deadline = time.monotonic() + self.timeout
        try:
            with self.session.get(
                self.endpoint, headers=headers, timeout=self.timeout, stream=True
            ) as resp:
                body = bytearray()
                for chunk in resp.iter_content(chunk_size=READ_CHUNK_SIZE):
                    if time.monotonic() > deadline:
                        raise DownstreamError(
                            f"GET {self.endpoint!r} took longer than {self.timeout}s"
                        )
                    body += chunk
        except (requests.RequestException, ValueError) as exc:
            raise DownstreamError(f"GET {self.endpoint!r} failed: {exc}") from exc

        if time.monotonic() > deadline:
            raise DownstreamError(f"GET {self.endpoint!r} took longer than {self.timeout}s")

        logger.debug("downstream %s answered %s (%d bytes)",
                     self.endpoint, resp.status_code, len(body))
        return bytes(body)
