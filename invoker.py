"""Resilient execution of one request across credentials and backend models.

Attempts walk the credential pool in priority order and, for each
credential, the backend ladder in fixed order (credential-major,
backend-minor). The walk is an explicit state machine:

    TRY_ATTEMPT -> CLASSIFY_OUTCOME -> SUCCESS
                                    -> BACKOFF_QUOTA -> TRY_ATTEMPT (next backend)
                                                     -> ADVANCE_CREDENTIAL (ladder done)
                                    -> ADVANCE_CREDENTIAL -> TRY_ATTEMPT (next credential)
                                                          -> EXHAUSTED

A quota failure keeps the credential and escalates the backend; any other
failure abandons the credential's remaining backends.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum

from backends import GenerativeBackend
from errors import BackendError, ExhaustionFailure, FailureKind
from models import Attempt, Credential, QueryRequest
from settings import ServiceConfig

LOGGER = logging.getLogger(__name__)

SUCCESS_OUTCOME = "success"


class InvokerState(str, Enum):
    TRY_ATTEMPT = "try_attempt"
    CLASSIFY_OUTCOME = "classify_outcome"
    BACKOFF_QUOTA = "backoff_quota"
    ADVANCE_CREDENTIAL = "advance_credential"
    SUCCESS = "success"
    EXHAUSTED = "exhausted"


# Where CLASSIFY_OUTCOME goes for each attempt outcome.
OUTCOME_TRANSITIONS: dict[str, InvokerState] = {
    SUCCESS_OUTCOME: InvokerState.SUCCESS,
    FailureKind.QUOTA_EXCEEDED.value: InvokerState.BACKOFF_QUOTA,
    FailureKind.TRANSIENT.value: InvokerState.ADVANCE_CREDENTIAL,
    FailureKind.OTHER.value: InvokerState.ADVANCE_CREDENTIAL,
}


@dataclass(slots=True)
class InvocationResult:
    text: str
    attempts: list[Attempt] = field(default_factory=list)


class ResilientInvoker:
    """Sequentially tries (credential, backend) pairs until one succeeds."""

    def __init__(
        self,
        backend: GenerativeBackend,
        ladder: Sequence[str],
        config: ServiceConfig,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.backend = backend
        self.ladder = tuple(ladder)
        self.config = config
        self.sleep = sleep

    async def execute(self, request: QueryRequest, credentials: Sequence[Credential]) -> str:
        """Return the raw response text, or raise ExhaustionFailure."""
        result = await self.run(request, credentials)
        return result.text

    async def run(self, request: QueryRequest, credentials: Sequence[Credential]) -> InvocationResult:
        pool = tuple(credentials)
        attempts: list[Attempt] = []
        last_error: Exception | None = None
        text = ""
        outcome = ""
        advance_delay = 0.0

        if not pool or not self.ladder:
            raise ExhaustionFailure(RuntimeError("No credentials or backends configured"), attempts)

        credential_index = 0
        backend_index = 0
        state = InvokerState.TRY_ATTEMPT

        while True:
            if state is InvokerState.TRY_ATTEMPT:
                credential = pool[credential_index]
                model = self.ladder[backend_index]
                try:
                    text = await self.backend.generate(credential.secret, model, request.prompt, request.schema)
                except BackendError as exc:
                    last_error = exc
                    outcome = exc.kind.value
                    LOGGER.warning(
                        "Backend attempt failed: key #%s (%s) model=%s kind=%s: %s",
                        credential_index + 1,
                        credential.masked,
                        model,
                        outcome,
                        exc,
                    )
                else:
                    outcome = SUCCESS_OUTCOME
                attempts.append(
                    Attempt(
                        credential_index=credential_index,
                        backend=model,
                        outcome=outcome,
                        error=None if outcome == SUCCESS_OUTCOME else str(last_error),
                    )
                )
                state = InvokerState.CLASSIFY_OUTCOME

            elif state is InvokerState.CLASSIFY_OUTCOME:
                state = OUTCOME_TRANSITIONS[outcome]
                advance_delay = self.config.transient_delay_seconds

            elif state is InvokerState.BACKOFF_QUOTA:
                has_next_backend = backend_index + 1 < len(self.ladder)
                if has_next_backend or credential_index + 1 < len(pool):
                    await self.sleep(self.config.quota_backoff(credential_index, backend_index))
                if has_next_backend:
                    backend_index += 1
                    state = InvokerState.TRY_ATTEMPT
                else:
                    # Already waited out the quota; move on without a second delay.
                    advance_delay = 0.0
                    state = InvokerState.ADVANCE_CREDENTIAL

            elif state is InvokerState.ADVANCE_CREDENTIAL:
                if credential_index + 1 < len(pool):
                    if advance_delay > 0:
                        await self.sleep(advance_delay)
                    credential_index += 1
                    backend_index = 0
                    state = InvokerState.TRY_ATTEMPT
                else:
                    state = InvokerState.EXHAUSTED

            elif state is InvokerState.SUCCESS:
                LOGGER.info(
                    "Backend call succeeded: key #%s model=%s after %s attempt(s)",
                    credential_index + 1,
                    self.ladder[backend_index],
                    len(attempts),
                )
                return InvocationResult(text=text, attempts=attempts)

            else:
                LOGGER.error("All %s backend attempts failed; last error: %s", len(attempts), last_error)
                raise ExhaustionFailure(last_error, attempts)
