"""Header suppliers for pre-authenticated provider sessions.

Sessions are captured in a browser and saved as a "Copy as cURL" command per
account. The supplier re-reads the capture on every call so a refreshed
session is picked up without restarting.
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

_URL_QUOTED = re.compile(r"curl\s+(?:-X\s+\w+\s+)?['\"]([^'\"]+)['\"]")
_URL_BARE = re.compile(r"curl\s+(?:-X\s+\w+\s+)?([^\s'\"]+)")
_METHOD = re.compile(r"-X\s+([A-Z]+)")
_HEADER = re.compile(r"-H\s+(?:\"([^\"]*)\"|'([^']*)')")
_COOKIE = re.compile(r"-b\s+(?:\"([^\"]*)\"|'([^']*)')")
_DATA = re.compile(
    r"(?:--data-raw|--data-binary|--data|-d)\s+(?:\"([^\"]*)\"|'([^']*)'|([^\s]+))"
)


class HeaderSupplier(Protocol):
    """Returns pre-authenticated request headers for an account."""

    def get_headers(self, account_id: str) -> dict[str, str]:
        """Return the headers to send with every provider request."""
        ...


@dataclass(frozen=True)
class CurlCommand:
    """Parsed pieces of a captured cURL command."""

    url: str
    method: str
    headers: dict[str, str]
    body: str | None = None


def parse_curl_command(curl: str) -> CurlCommand:
    """Parse a browser "Copy as cURL" command.

    Args:
        curl: The raw command, possibly spanning several continued lines

    Returns:
        CurlCommand: URL, method, headers (including Cookie) and body
    """
    normalized = re.sub(r"\\\s*\n", " ", curl)
    normalized = re.sub(r"[\r\n]+", " ", normalized).strip()

    url = ""
    match = _URL_QUOTED.search(normalized) or _URL_BARE.search(normalized)
    if match:
        url = match.group(1)

    method = "GET"
    method_match = _METHOD.search(normalized)
    if method_match:
        method = method_match.group(1)
    elif " -d " in normalized or " --data" in normalized:
        method = "POST"

    headers: dict[str, str] = {}
    for header_match in _HEADER.finditer(normalized):
        content = header_match.group(1) or header_match.group(2) or ""
        key, sep, value = content.partition(":")
        if sep and key.strip() and value.strip():
            headers[key.strip()] = value.strip()

    cookie_match = _COOKIE.search(normalized)
    if cookie_match:
        headers["Cookie"] = cookie_match.group(1) or cookie_match.group(2) or ""

    body_parts = [
        m.group(1) or m.group(2) or m.group(3)
        for m in _DATA.finditer(normalized)
        if m.group(1) or m.group(2) or m.group(3)
    ]
    body = "\n".join(body_parts) if body_parts else None

    return CurlCommand(url=url, method=method, headers=headers, body=body)


class CurlFileHeaderSupplier:
    """Reads headers from ``<directory>/<account_id>.curl``."""

    def __init__(self, directory: Path) -> None:
        self.directory = Path(directory)

    def path_for(self, account_id: str) -> Path:
        """Return the capture file path for an account."""
        if not re.match(r"^[a-zA-Z0-9_.-]+$", account_id):
            raise ValueError(f"Invalid account id: {account_id}")
        return self.directory / f"{account_id}.curl"

    def get_headers(self, account_id: str) -> dict[str, str]:
        """Parse the stored capture and return its headers.

        Raises:
            FileNotFoundError: If no capture is stored for the account
        """
        path = self.path_for(account_id)
        if not path.exists():
            raise FileNotFoundError(
                f"No session capture for account '{account_id}' at {path}. "
                f"Run: paysync credentials set {account_id} --curl-file <file>"
            )
        command = parse_curl_command(path.read_text(encoding="utf-8"))
        if not command.headers:
            logger.warning(f"Session capture for {account_id} contains no headers")
        return command.headers

    def save(self, account_id: str, curl: str) -> Path:
        """Validate and store a capture for an account.

        Raises:
            ValueError: If the command carries no headers
        """
        command = parse_curl_command(curl)
        if not command.headers:
            raise ValueError("cURL command contains no headers")
        path = self.path_for(account_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(curl, encoding="utf-8")
        path.chmod(0o600)
        logger.info(f"Saved session capture for {account_id} to {path}")
        return path
