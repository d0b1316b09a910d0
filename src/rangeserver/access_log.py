"""
=============================================================================
ACCESS LOG
=============================================================================

One line per answered request, written to the "rangeserver.access"
logger so it can be routed separately from diagnostic logs:

    logging.getLogger("rangeserver.access").addHandler(file_handler)

=============================================================================
LOG FORMATS
=============================================================================

    TEXT (default, Apache-like):
    ┌─────────────────────────────────────────────────────────────────────┐
    │ 192.168.1.7 - - [18/Oct/2026:20:15:02 +0000] "GET /a.mp4" 206       │
    │     1048576 bytes=0-1048575 12.40ms [3f2a9c1e]                       │
    └─────────────────────────────────────────────────────────────────────┘

    JSON (for log aggregators):
    {"connection_id": "3f2a9c1e", "method": "GET", "path": "/a.mp4",
     "range": "bytes=0-1048575", "status_code": 206, "bytes_sent": 1048576,
     ...}

bytes_sent is what actually went out, so an aborted transfer shows up
as fewer bytes than the Content-Length the client was promised.

=============================================================================
"""

import json
import time
import logging
from dataclasses import asdict, dataclass
from typing import Optional

from .http.request import HTTPRequest


logger = logging.getLogger("rangeserver.access")


@dataclass
class AccessLog:
    """
    Structured log entry for one request.

    connection_id ties together all requests served on one kept-alive
    connection.
    """

    connection_id: str
    method: str
    path: str
    client_ip: str
    user_agent: str
    range: str
    status_code: int
    bytes_sent: int
    duration_ms: float
    timestamp: str

    @classmethod
    def from_request(
        cls,
        connection_id: str,
        request: HTTPRequest,
        status_code: Optional[int],
        bytes_sent: int,
        duration_ms: float,
    ) -> "AccessLog":
        return cls(
            connection_id=connection_id,
            method=request.method,
            path=request.path,
            client_ip=request.client_address[0],
            user_agent=request.get_header("User-Agent") or "-",
            range=request.get_header("Range") or "-",
            # No status: the response never got its headers out
            status_code=int(status_code) if status_code is not None else 0,
            bytes_sent=bytes_sent,
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

    def to_dict(self) -> dict:
        data = asdict(self)
        data["duration_ms"] = round(self.duration_ms, 2)
        return data

    def to_text(self) -> str:
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.bytes_sent} {self.range} {self.duration_ms:.2f}ms '
            f'[{self.connection_id}]'
        )

    def emit(self, log_format: str = "text", level: int = logging.INFO) -> None:
        """Write this entry to the access logger."""
        if log_format == "json":
            logger.log(level, json.dumps(self.to_dict()))
        else:
            logger.log(level, self.to_text())
