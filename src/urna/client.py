"""
======================== ÍNDICE / INDEX ========================
1. Descripción general / Overview
2. Componentes principales / Main components
3. Notas de mantenimiento / Maintenance notes

======================== ESPAÑOL ========================
Archivo: `src/urna/client.py`.
Este módulo forma parte de Urna Engine y está documentado para facilitar
la navegación, mantenimiento y auditoría técnica.

Componentes detectados:
  - classify_submission_failure
  - BackendClient

Notas:
- Mantener esta cabecera sincronizada con cambios estructurales del archivo.
- Priorizar claridad operativa y trazabilidad del comportamiento.

======================== ENGLISH ========================
File: `src/urna/client.py`.
This module is part of Urna Engine and is documented to improve
navigation, maintenance, and technical auditability.

Detected components:
  - classify_submission_failure
  - BackendClient

Notes:
- Keep this header in sync with structural changes in the file.
- Prioritize operational clarity and behavior traceability.
"""

from __future__ import annotations

import time
from typing import Any, Dict, List, Optional

import httpx
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from . import __version__
from .config import UrnaSettings, load_config
from .errors import BackendError, SnapshotFormatError, SubmissionError, TransientBackendError
from .models import BallotDraft, Candidate, Identity, PriorBallot, RejectionReason, TallySnapshot
from .schemas import (
    build_ballot_payload,
    parse_candidates,
    parse_prior_ballot,
    parse_real_votes,
    parse_vote_counts,
)

RETRYABLE_STATUS = {429, 502, 503, 504}
_ALREADY_VOTED_MARKERS = ("ya vot", "ya ha votado", "already voted", "already cast")


def _response_detail(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(payload, dict) and "detail" in payload:
        return str(payload["detail"])
    return str(payload)[:500]


def _reported_candidate(response: httpx.Response) -> Optional[str]:
    try:
        payload = response.json()
    except ValueError:
        return None
    if isinstance(payload, dict):
        candidate_id = payload.get("candidate_id")
        return str(candidate_id) if candidate_id else None
    return None


def classify_submission_failure(response: httpx.Response) -> SubmissionError:
    """Traduce una respuesta HTTP fallida a un motivo de rechazo.

    English: Map a failed ``POST /votes`` response to a rejection reason:
    401/403 not authenticated; 409, or 400 whose detail says the voter
    already voted, already voted; other 4xx validation rejected; the rest
    transient.
    """
    status = response.status_code
    detail = _response_detail(response)
    lowered = detail.lower()
    if status in (401, 403):
        reason = RejectionReason.NOT_AUTHENTICATED
    elif status == 409 or (status == 400 and any(marker in lowered for marker in _ALREADY_VOTED_MARKERS)):
        reason = RejectionReason.ALREADY_VOTED
    elif 400 <= status < 500 and status not in RETRYABLE_STATUS:
        reason = RejectionReason.VALIDATION_REJECTED
    else:
        reason = RejectionReason.TRANSIENT
    candidate_id = _reported_candidate(response) if reason is RejectionReason.ALREADY_VOTED else None
    return SubmissionError(reason, detail, status_code=status, candidate_id=candidate_id)


class BackendClient:
    """Cliente asíncrono del backend electoral.

    English: Async client for the electoral backend. Reads (snapshot, prior
    ballot check, catalog) are retried on transient failures; the ballot
    submission is never retried because it is not idempotent.
    """

    def __init__(
        self,
        settings: Optional[UrnaSettings] = None,
        *,
        client: Optional[httpx.AsyncClient] = None,
        logger: Optional[Any] = None,
    ) -> None:
        self.settings = settings or load_config()
        self.base_url = self.settings.API_BASE_URL.rstrip("/")
        self.logger = logger or structlog.get_logger(__name__)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.REQUEST_TIMEOUT_SECONDS),
            headers={"User-Agent": f"UrnaEngine/{__version__}"},
        )

    async def __aenter__(self) -> "BackendClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    @staticmethod
    def _auth_headers(identity: Optional[Identity]) -> Dict[str, str]:
        if identity is None or not identity.authenticated:
            return {}
        return {"Authorization": f"Bearer {identity.access_token}"}

    def _log_retry(self, retry_state) -> None:  # noqa: ANN001
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return
        self.logger.warning(
            "backend_retry",
            attempt=retry_state.attempt_number,
            max_attempts=self.settings.FETCH_MAX_ATTEMPTS,
            error=str(outcome.exception()),
        )

    async def _get_once(self, path: str, headers: Dict[str, str]) -> Any:
        url = self._url(path)
        start = time.monotonic()
        try:
            response = await self._client.get(url, headers=headers)
        except httpx.TimeoutException as exc:
            raise TransientBackendError(f"Timeout for {url}: {exc}") from exc
        except httpx.RequestError as exc:
            raise TransientBackendError(f"Request failed for {url}: {exc}") from exc

        elapsed = round(time.monotonic() - start, 3)
        if response.status_code in RETRYABLE_STATUS or response.status_code >= 500:
            raise TransientBackendError(
                f"Retryable status {response.status_code} for {url}",
                status_code=response.status_code,
            )
        if response.status_code >= 400:
            raise BackendError(
                f"HTTP {response.status_code} for {url}: {_response_detail(response)}",
                status_code=response.status_code,
            )
        try:
            payload = response.json()
        except ValueError as exc:
            raise SnapshotFormatError(f"Invalid JSON from {url}: {exc}") from exc
        self.logger.debug("backend_response", url=url, status_code=response.status_code, elapsed_seconds=elapsed)
        return payload

    async def _get_json(self, path: str, *, identity: Optional[Identity] = None) -> Any:
        headers = self._auth_headers(identity)
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransientBackendError),
            stop=stop_after_attempt(self.settings.FETCH_MAX_ATTEMPTS),
            wait=wait_exponential(
                multiplier=self.settings.FETCH_BACKOFF_SECONDS,
                max=self.settings.FETCH_BACKOFF_MAX_SECONDS,
            ),
            before_sleep=self._log_retry,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                return await self._get_once(path, headers)
        raise BackendError(f"No attempt made for {path}")

    async def fetch_snapshot(self, year: Optional[int] = None) -> TallySnapshot:
        """Obtiene el conteo en vivo, o el histórico de ``year``.

        English: Fetch the live vote counts, or the historical results for
        ``year`` when given.
        """
        if year is not None:
            return parse_real_votes(await self._get_json(f"/data/real-votes/{int(year)}"))
        return parse_vote_counts(await self._get_json("/votes/counts"))

    async def check_prior_ballot(self, identity: Identity) -> PriorBallot:
        return parse_prior_ballot(await self._get_json("/votes/check", identity=identity))

    async def list_candidates(self) -> List[Candidate]:
        return parse_candidates(await self._get_json("/candidates"))

    async def submit_ballot(self, draft: BallotDraft, identity: Optional[Identity]) -> Any:
        """Envía el voto una sola vez.

        English: Submit the ballot exactly once. Raises ``SubmissionError``
        with a machine-distinguishable reason on any failure.
        """
        if identity is None or not identity.authenticated:
            raise SubmissionError(RejectionReason.NOT_AUTHENTICATED, "missing bearer credential")
        url = self._url("/votes")
        try:
            response = await self._client.post(
                url,
                json=build_ballot_payload(draft),
                headers=self._auth_headers(identity),
            )
        except httpx.TimeoutException as exc:
            raise SubmissionError(RejectionReason.TRANSIENT, f"timeout: {exc}") from exc
        except httpx.RequestError as exc:
            raise SubmissionError(RejectionReason.TRANSIENT, f"request error: {exc}") from exc

        if response.status_code >= 400:
            failure = classify_submission_failure(response)
            self.logger.warning(
                "ballot_submission_failed",
                status_code=response.status_code,
                reason=failure.reason.value,
                detail=failure.detail,
            )
            raise failure

        self.logger.info("ballot_submitted", candidate_id=draft.candidate_id, status_code=response.status_code)
        try:
            return response.json()
        except ValueError:
            return None
