import logging
from typing import List, Optional

import requests

from .config import Config
from .schema import Experiment, MalformedExperimentError

logger = logging.getLogger(__name__)


class HttpEngineClient:
    """Experiment store and event sink backed by the A/B testing HTTP API.

    Usage example:
        client = HttpEngineClient(base_url="http://localhost:5000")
        runtime = ExperimentRuntime(document, AssignmentStore(), client)
        runtime.load_and_run(client)
    """

    def __init__(self, base_url: str = Config.API_URL, timeout: float = Config.HTTP_TIMEOUT,
                 session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = session or requests.Session()

    def _get(self, path: str):
        url = f"{self.base_url}{path}"
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def _post(self, path: str, payload: dict):
        url = f"{self.base_url}{path}"
        response = self.session.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def get_active_experiments(self) -> List[Experiment]:
        data = self._get("/api/abtesting/active")
        if not data.get("success") or not isinstance(data.get("data"), list):
            raise ValueError("Failed to load A/B tests: unexpected response")
        experiments = []
        for raw in data["data"]:
            try:
                experiments.append(Experiment.from_dict(raw))
            except (MalformedExperimentError, KeyError, TypeError, ValueError) as e:
                logger.warning(f"Skipping malformed experiment {raw.get('id')!r}: {e}")
        return experiments

    def record_impression(self, experiment_id: str, variant_id: str, **context: str) -> None:
        self._post(f"/api/abtesting/tests/{experiment_id}/variants/{variant_id}/impression", context)

    def record_conversion(self, experiment_id: str, variant_id: str, **context: str) -> None:
        self._post(f"/api/abtesting/tests/{experiment_id}/variants/{variant_id}/conversion", context)
