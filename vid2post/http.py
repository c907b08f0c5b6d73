from __future__ import annotations

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry


def get_session(*, retries: int = 0) -> requests.Session:
    """Requests session shared by the HTTP adapters.

    Retries default to 0: a failed call fails its stage, and re-running the job is the
    retry mechanism. Raise `retries` only for transport-level flakiness (connect/5xx).
    """
    session = requests.Session()
    retry = Retry(
        total=retries,
        read=retries,
        connect=retries,
        backoff_factor=1,
        status_forcelist=[500, 502, 503, 504],
        raise_on_status=False,
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session
