"""GitHub device-code login and Copilot token exchange."""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from .errors import AuthError

LOGGER = logging.getLogger(__name__)

CLIENT_ID = "Iv1.b507a08c87ecfe98"
DEVICE_CODE_URL = "https://github.com/login/device/code"
ACCESS_TOKEN_URL = "https://github.com/login/oauth/access_token"
COPILOT_TOKEN_URL = "https://api.github.com/copilot_internal/v2/token"
DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
DEFAULT_PAT_PATH = Path.home() / ".copilot-pat"
PAT_ENV_VAR = "COPILOT_PAT"

PLUGIN_HEADERS = {
    "accept": "application/json",
    "editor-version": "Neovim/0.6.1",
    "editor-plugin-version": "copilot.vim/1.16.0",
    "user-agent": "GithubCopilot/1.155.0",
}

# (method, url, headers, body) -> (status, text)
HttpTransport = Callable[[str, str, Dict[str, str], Optional[bytes]], "tuple[int, str]"]


@dataclass(slots=True)
class DeviceCode:
    """Device-code grant returned by GitHub."""

    device_code: str
    user_code: str
    verification_uri: str
    expires_in: int = 900
    interval: int = 5


def _http_request(method: str, url: str, headers: Dict[str, str], body: Optional[bytes]) -> tuple[int, str]:
    import urllib.error
    import urllib.request

    request = urllib.request.Request(url, data=body, headers=headers, method=method)
    try:
        with urllib.request.urlopen(request, timeout=30) as response:
            return getattr(response, "status", 200), response.read().decode("utf-8")
    except urllib.error.HTTPError as error:  # pragma: no cover - network-dependent
        return error.code, error.read().decode("utf-8", errors="ignore")
    except urllib.error.URLError as error:  # pragma: no cover - network-dependent
        raise AuthError(f"Failed to reach {url}: {error.reason}") from error


class CopilotAuth:
    """Obtains Copilot access tokens from a stored personal token."""

    def __init__(
        self,
        *,
        pat_path: Path = DEFAULT_PAT_PATH,
        transport: Optional[HttpTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.pat_path = Path(pat_path).expanduser()
        self._transport = transport or _http_request
        self._sleep = sleep
        self._clock = clock
        self._cached_token: Optional[str] = None

    # ------------------------------------------------------------ requests
    def _request_json(
        self,
        method: str,
        url: str,
        *,
        headers: Dict[str, str],
        payload: Optional[Dict[str, Any]] = None,
    ) -> tuple[int, Any]:
        body = json.dumps(payload).encode("utf-8") if payload is not None else None
        if body is not None:
            headers = {**headers, "Content-Type": "application/json"}
        status, text = self._transport(method, url, headers, body)
        try:
            return status, json.loads(text)
        except json.JSONDecodeError:
            return status, text

    # ---------------------------------------------------------- device flow
    def request_device_code(self) -> DeviceCode:
        status, data = self._request_json(
            "POST",
            DEVICE_CODE_URL,
            headers=PLUGIN_HEADERS,
            payload={"client_id": CLIENT_ID, "scope": "read:user"},
        )
        if status != 200 or not isinstance(data, dict) or "device_code" not in data:
            raise AuthError(f"Device code request failed: {data!r}")
        return DeviceCode(
            device_code=str(data["device_code"]),
            user_code=str(data.get("user_code", "")),
            verification_uri=str(data.get("verification_uri", "")),
            expires_in=int(data.get("expires_in") or 900),
            interval=int(data.get("interval") or 5),
        )

    def poll_for_pat(self, code: DeviceCode) -> str:
        """Poll until the user authorises the device or the code expires."""
        deadline = self._clock() + code.expires_in
        while self._clock() < deadline:
            status, data = self._request_json(
                "POST",
                ACCESS_TOKEN_URL,
                headers=PLUGIN_HEADERS,
                payload={
                    "client_id": CLIENT_ID,
                    "device_code": code.device_code,
                    "grant_type": DEVICE_GRANT_TYPE,
                },
            )
            if status == 200 and isinstance(data, dict) and data.get("access_token"):
                return str(data["access_token"])
            LOGGER.debug("Authorisation pending: %s", data)
            self._sleep(code.interval)
        raise AuthError("Timed out waiting for device authorisation.")

    # -------------------------------------------------------------- storage
    def save_pat(self, pat: str) -> Path:
        self.pat_path.parent.mkdir(parents=True, exist_ok=True)
        self.pat_path.write_text(pat, encoding="utf-8")
        try:
            os.chmod(self.pat_path, 0o600)
        except OSError:  # pragma: no cover - platform-dependent
            LOGGER.warning("Could not restrict permissions on %s", self.pat_path)
        return self.pat_path

    def read_pat(self) -> Optional[str]:
        from_env = os.environ.get(PAT_ENV_VAR, "").strip()
        if from_env:
            return from_env
        try:
            stored = self.pat_path.read_text(encoding="utf-8").strip()
        except OSError:
            return None
        return stored or None

    # ------------------------------------------------------------- exchange
    def exchange_token(self, pat: str) -> str:
        status, data = self._request_json(
            "GET",
            COPILOT_TOKEN_URL,
            headers={**PLUGIN_HEADERS, "authorization": f"token {pat}"},
        )
        if status != 200 or not isinstance(data, dict) or not data.get("token"):
            raise AuthError(f"Token request failed: {data!r}")
        return str(data["token"])

    def get_access_token(self) -> str:
        """Return a Copilot access token, exchanging the stored PAT once."""
        if self._cached_token:
            return self._cached_token
        pat = self.read_pat()
        if not pat:
            raise AuthError(
                f"No personal token found. Run `copilot-agent auth` or set {PAT_ENV_VAR}."
            )
        self._cached_token = self.exchange_token(pat)
        return self._cached_token


__all__ = ["CopilotAuth", "DeviceCode", "PAT_ENV_VAR"]
