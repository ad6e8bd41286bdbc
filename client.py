import requests
from typing import Any, Optional


class TrackerClient:
    """Simple REST client for the workout tracker API.

    ``http`` defaults to a :class:`requests.Session`; any object exposing a
    compatible ``request`` method (such as FastAPI's ``TestClient``) works.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        user_id: str = "local",
        api_token: Optional[str] = None,
        http: Any = None,
        timeout: Optional[float] = 10,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.user_id = user_id
        self.api_token = api_token
        self.http = http if http is not None else requests.Session()
        self.timeout = timeout

    def _headers(self) -> dict:
        headers = {"X-User-Id": self.user_id}
        if self.api_token:
            headers["Authorization"] = f"Bearer {self.api_token}"
        return headers

    def _request(self, method: str, path: str, **kwargs):
        if self.timeout is not None:
            kwargs["timeout"] = self.timeout
        resp = self.http.request(
            method, f"{self.base_url}{path}", headers=self._headers(), **kwargs
        )
        if resp.status_code >= 400:
            raise requests.HTTPError(
                f"{resp.status_code} error for {method} {path}: {resp.text}",
                response=resp,
            )
        return resp.json()

    def health(self) -> dict:
        return self._request("GET", "/health")

    def list_templates(self) -> list:
        return self._request("GET", "/workouts")

    def fetch_template(self, template_id: int) -> dict:
        return self._request("GET", f"/workouts/{template_id}")

    def create_template(self, template: dict) -> int:
        return self._request("POST", "/workouts", json=template)["id"]

    def bulk_exercise_logs(self, payload: dict) -> list:
        return self._request("POST", "/exercise-logs/bulk", json=payload)

    def fetch_exercise_logs(self, log_date: str) -> list:
        return self._request("GET", f"/exercise-logs/{log_date}")

    def upsert_daily_log(self, payload: dict, accumulate: bool = False) -> dict:
        body = dict(payload)
        if accumulate:
            body["accumulate"] = True
        return self._request("POST", "/daily-logs", json=body)

    def fetch_daily_log(self, log_date: str) -> Optional[dict]:
        try:
            return self._request("GET", f"/daily-logs/{log_date}")
        except requests.HTTPError as e:
            if e.response is not None and e.response.status_code == 404:
                return None
            raise

    def daily_log_range(self, time_range: str = "7d") -> list:
        return self._request("GET", f"/daily-logs/range/{time_range}")
