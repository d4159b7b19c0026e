"""Tests for invoker.ResilientInvoker ordering, backoff and exhaustion."""

from __future__ import annotations

import asyncio
import itertools

import pytest

from decoder import decode
from errors import BackendError, ExhaustionFailure, FailureKind
from invoker import OUTCOME_TRANSITIONS, InvokerState, ResilientInvoker
from models import Credential, CredentialSource, QueryRequest, RecordSchema
from settings import ServiceConfig

_CONFIG = ServiceConfig(quota_backoff_seconds=1.0, quota_backoff_step_seconds=0.5, transient_delay_seconds=0.25)
_REQUEST = QueryRequest(prompt="Find papers on graph neural networks")

_THREE_RECORDS = """[
  {"title": "Paper A", "authors": "Ng", "year": "2021", "description": "A.", "source": "arXiv", "status": "Preprint"},
  {"title": "Paper B", "authors": "Li", "year": "2022", "description": "B.", "source": "Nature", "status": "Peer Reviewed"},
  {"title": "Paper C", "authors": "Wu", "year": "2023", "description": "C.", "source": "ICLR", "status": "Peer Reviewed"}
]"""


def _quota() -> BackendError:
    return BackendError(FailureKind.QUOTA_EXCEEDED, "429 RESOURCE_EXHAUSTED", status_code=429)


def _transient() -> BackendError:
    return BackendError(FailureKind.TRANSIENT, "connection reset")


def _pool(*secrets: str) -> list[Credential]:
    return [Credential(secret=s, source=CredentialSource.PROCESS_CONFIG, rank=i) for i, s in enumerate(secrets)]


class ScriptedBackend:
    """Fake backend: outcomes keyed by (credential, model), else ``default``."""

    name = "fake"

    def __init__(self, outcomes: dict | None = None, default: object = None) -> None:
        self.outcomes = outcomes or {}
        self.default = default if default is not None else _quota()
        self.calls: list[tuple[str, str]] = []

    async def generate(self, credential, backend, prompt, schema=None):
        self.calls.append((credential, backend))
        outcome = self.outcomes.get((credential, backend), self.default)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


def _invoker(backend: ScriptedBackend, ladder: list[str], sleep: SleepRecorder | None = None) -> ResilientInvoker:
    return ResilientInvoker(backend, ladder, _CONFIG, sleep=sleep or SleepRecorder())


# ---------------------------------------------------------------------------
# Ordering
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("n_credentials,n_backends", [(1, 1), (1, 3), (2, 2), (3, 2), (4, 3)])
def test_all_quota_failures_make_c_times_b_attempts_in_order(n_credentials: int, n_backends: int) -> None:
    secrets = [f"K{i}" for i in range(n_credentials)]
    ladder = [f"M{j}" for j in range(n_backends)]
    backend = ScriptedBackend()

    with pytest.raises(ExhaustionFailure) as excinfo:
        asyncio.run(_invoker(backend, ladder).execute(_REQUEST, _pool(*secrets)))

    assert backend.calls == list(itertools.product(secrets, ladder))
    assert len(excinfo.value.attempts) == n_credentials * n_backends


def test_quota_visits_every_backend_before_next_credential() -> None:
    backend = ScriptedBackend()

    with pytest.raises(ExhaustionFailure):
        asyncio.run(_invoker(backend, ["M1", "M2", "M3"]).execute(_REQUEST, _pool("K1", "K2")))

    assert backend.calls[:3] == [("K1", "M1"), ("K1", "M2"), ("K1", "M3")]
    assert backend.calls[3] == ("K2", "M1")


@pytest.mark.parametrize("k", range(6))
def test_success_on_kth_attempt_stops_immediately(k: int) -> None:
    order = list(itertools.product(["K1", "K2", "K3"], ["M1", "M2"]))
    backend = ScriptedBackend(outcomes={order[k]: "ok"})

    result = asyncio.run(_invoker(backend, ["M1", "M2"]).run(_REQUEST, _pool("K1", "K2", "K3")))

    assert result.text == "ok"
    assert backend.calls == order[: k + 1]
    assert result.attempts[-1].outcome == "success"


def test_transient_failure_skips_to_next_credential() -> None:
    backend = ScriptedBackend(outcomes={("K1", "M1"): _transient(), ("K2", "M1"): "ok"})

    text = asyncio.run(_invoker(backend, ["M1", "M2", "M3"]).execute(_REQUEST, _pool("K1", "K2")))

    assert text == "ok"
    assert backend.calls == [("K1", "M1"), ("K2", "M1")]


def test_all_transient_failures_try_first_backend_of_each_credential() -> None:
    backend = ScriptedBackend(default=_transient())

    with pytest.raises(ExhaustionFailure):
        asyncio.run(_invoker(backend, ["M1", "M2"]).execute(_REQUEST, _pool("K1", "K2", "K3")))

    assert backend.calls == [("K1", "M1"), ("K2", "M1"), ("K3", "M1")]


def test_other_failure_escalates_credential_like_transient() -> None:
    backend = ScriptedBackend(
        outcomes={("K1", "M1"): BackendError(FailureKind.OTHER, "401 unauthorized", 401), ("K2", "M1"): "ok"}
    )

    asyncio.run(_invoker(backend, ["M1", "M2"]).execute(_REQUEST, _pool("K1", "K2")))

    assert backend.calls == [("K1", "M1"), ("K2", "M1")]


def test_mixed_failures_then_valid_payload() -> None:
    backend = ScriptedBackend(
        outcomes={
            ("K1", "M1"): _quota(),
            ("K1", "M2"): _transient(),
            ("K2", "M1"): _THREE_RECORDS,
        }
    )

    raw = asyncio.run(_invoker(backend, ["M1", "M2"]).execute(_REQUEST, _pool("K1", "K2")))

    assert backend.calls == [("K1", "M1"), ("K1", "M2"), ("K2", "M1")]
    assert len(decode(raw, RecordSchema())) == 3


def test_no_pair_attempted_twice() -> None:
    backend = ScriptedBackend(
        outcomes={("K1", "M2"): _transient(), ("K2", "M1"): _quota(), ("K2", "M2"): _transient()}
    )

    with pytest.raises(ExhaustionFailure):
        asyncio.run(_invoker(backend, ["M1", "M2"]).execute(_REQUEST, _pool("K1", "K2", "K3")))

    assert len(backend.calls) == len(set(backend.calls))


# ---------------------------------------------------------------------------
# Delays
# ---------------------------------------------------------------------------

def test_quota_backoff_grows_with_both_indices() -> None:
    sleep = SleepRecorder()
    backend = ScriptedBackend()

    with pytest.raises(ExhaustionFailure):
        asyncio.run(_invoker(backend, ["M1", "M2"], sleep).execute(_REQUEST, _pool("K1", "K2")))

    # (K1,M1) (K1,M2) (K2,M1) back off; nothing follows (K2,M2).
    assert sleep.delays == [1.0, 1.5, 1.5]


def test_transient_failure_uses_short_fixed_delay() -> None:
    sleep = SleepRecorder()
    backend = ScriptedBackend(default=_transient())

    with pytest.raises(ExhaustionFailure):
        asyncio.run(_invoker(backend, ["M1"], sleep).execute(_REQUEST, _pool("K1", "K2", "K3")))

    assert sleep.delays == [0.25, 0.25]


def test_no_delay_after_success() -> None:
    sleep = SleepRecorder()
    backend = ScriptedBackend(default="ok")

    asyncio.run(_invoker(backend, ["M1", "M2"], sleep).execute(_REQUEST, _pool("K1")))

    assert sleep.delays == []


# ---------------------------------------------------------------------------
# Exhaustion and propagation
# ---------------------------------------------------------------------------

def test_exhaustion_carries_last_error_and_attempt_log() -> None:
    last = _transient()
    backend = ScriptedBackend(outcomes={("K1", "M1"): _quota(), ("K1", "M2"): last})

    with pytest.raises(ExhaustionFailure) as excinfo:
        asyncio.run(_invoker(backend, ["M1", "M2"]).execute(_REQUEST, _pool("K1")))

    assert excinfo.value.last_error is last
    assert [a.outcome for a in excinfo.value.attempts] == ["quota_exceeded", "transient"]
    assert [a.backend for a in excinfo.value.attempts] == ["M1", "M2"]


def test_empty_pool_is_exhausted_without_attempts() -> None:
    backend = ScriptedBackend(default="ok")

    with pytest.raises(ExhaustionFailure) as excinfo:
        asyncio.run(_invoker(backend, ["M1"]).execute(_REQUEST, []))

    assert backend.calls == []
    assert excinfo.value.attempts == []


def test_unclassified_exception_propagates() -> None:
    backend = ScriptedBackend(default=KeyError("bug"))

    with pytest.raises(KeyError):
        asyncio.run(_invoker(backend, ["M1", "M2"]).execute(_REQUEST, _pool("K1", "K2")))

    assert backend.calls == [("K1", "M1")]


def test_outcome_transition_table() -> None:
    assert OUTCOME_TRANSITIONS == {
        "success": InvokerState.SUCCESS,
        "quota_exceeded": InvokerState.BACKOFF_QUOTA,
        "transient": InvokerState.ADVANCE_CREDENTIAL,
        "other": InvokerState.ADVANCE_CREDENTIAL,
    }
