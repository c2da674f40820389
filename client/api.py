import json
import logging

import requests

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10


class ApiError(Exception):
    def __init__(self, message, status_code=None, code=None):
        super().__init__(message)
        self.status_code = status_code
        self.code = code


class AuthRejected(ApiError):
    """The server refused the session (401/403)."""


class ProgressApiClient:
    """HTTP client for the progress tracker API, authenticating with a bearer session token."""

    def __init__(self, base_url, session_token=None, timeout=DEFAULT_TIMEOUT, http=None):
        self.base_url = base_url.rstrip("/")
        self.session_token = session_token
        self.timeout = timeout
        self.http = http or requests.Session()

    def _headers(self):
        headers = {"Accept": "application/json"}
        if self.session_token:
            headers["Authorization"] = f"Bearer {self.session_token}"
        return headers

    def _request(self, method, path, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            response = self.http.request(method, url, headers=self._headers(), timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            logger.error("Request %s %s failed: %s", method, path, e)
            raise ApiError(f"Request failed: {e}")

        try:
            body = response.json()
        except ValueError:
            body = {}

        if response.status_code in (401, 403):
            raise AuthRejected(body.get("error", "Unauthorized"), response.status_code, body.get("code"))
        if response.status_code >= 400:
            raise ApiError(body.get("error", response.reason), response.status_code, body.get("code"))
        return body

    def login(self, username, password):
        body = self._request("POST", "/api/login", json={"username": username, "password": password})
        self.session_token = body.get("sessionToken")
        return body

    def logout(self):
        try:
            return self._request("POST", "/api/logout")
        finally:
            self.session_token = None

    def current_user(self):
        return self._request("GET", "/api/session")["user"]

    def get_progress(self, username):
        return self._request("GET", f"/api/progress/{username}")

    def update_progress(self, username, updates):
        """``updates`` is a list of ``{"video_id": int, "completed": bool}`` dicts."""
        return self._request("POST", f"/api/progress/{username}", json={"updates": list(updates)})

    def completed_video_ids(self, username):
        progress = self.get_progress(username)["progress"]
        return sorted(int(video_id) for video_id, record in progress.items() if record.get("completed"))

    def stream_events(self):
        """Yield decoded events from the progress event stream until it closes."""
        url = f"{self.base_url}/api/sse/progress"
        headers = self._headers()
        headers["Accept"] = "text/event-stream"
        with self.http.get(url, headers=headers, stream=True, timeout=(self.timeout, None)) as response:
            if response.status_code in (401, 403):
                raise AuthRejected("Event stream rejected", response.status_code)
            if response.status_code >= 400:
                raise ApiError("Event stream failed", response.status_code)
            for event in parse_event_stream(response.iter_lines(decode_unicode=True)):
                yield event


def parse_event_stream(lines):
    """Decode ``data: <json>`` frames separated by blank lines."""
    data_lines = []
    for line in lines:
        if line is None:
            continue
        if line == "":
            if data_lines:
                payload = "\n".join(data_lines)
                data_lines = []
                try:
                    yield json.loads(payload)
                except ValueError:
                    logger.warning("Skipping malformed event frame: %r", payload)
            continue
        if line.startswith("data:"):
            data_lines.append(line[len("data:"):].lstrip())
