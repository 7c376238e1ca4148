"""
tests/conftest.py

Shared fakes: an in-process stand-in for `requests.Session` with a sleep
recorder, plus an in-memory database for the job service and API tests.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import parse_qsl, urlsplit

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.connectors.auth import AuthContext
from app.connectors.base import RequestExecutor
from app.connectors.pagination import PageFetchContext
from db.base import Base
from db.models import Source
from db.repositories.source_repository import SourceRepository


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        *,
        text: str | None = None,
        reason: str = "",
        headers: dict[str, str] | None = None,
    ) -> None:
        self.status_code = status_code
        self.headers = dict(headers or {})
        if text is not None:
            self.text = text
        elif payload is None:
            self.text = ""
        else:
            self.text = json.dumps(payload)
        self.reason = reason

    def json(self) -> Any:
        return json.loads(self.text)


@dataclass
class RecordedCall:
    method: str
    url: str
    params: dict[str, Any] = field(default_factory=dict)
    headers: dict[str, str] = field(default_factory=dict)

    @property
    def query(self) -> dict[str, str]:
        """Params passed explicitly plus any carried in the URL itself."""
        merged = dict(parse_qsl(urlsplit(self.url).query))
        merged.update({key: str(value) for key, value in self.params.items()})
        return merged

    @property
    def path(self) -> str:
        return urlsplit(self.url).path


Handler = Callable[[RecordedCall], Any]


class FakeSession:
    """
    Records every request and answers it through `handler`.

    The handler may return a FakeResponse or an exception instance to raise.
    """

    def __init__(self, handler: Handler) -> None:
        self._handler = handler
        self.calls: list[RecordedCall] = []

    @classmethod
    def from_responses(cls, responses: list[Any]) -> FakeSession:
        queue = list(responses)

        def handler(call: RecordedCall) -> Any:
            if not queue:
                raise AssertionError(f"Unexpected request: {call.method} {call.url}")
            return queue.pop(0)

        return cls(handler)

    def request(
        self,
        method: str,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json: Any = None,
        timeout: float | None = None,
    ) -> FakeResponse:
        call = RecordedCall(method=method, url=url, params=dict(params or {}), headers=dict(headers or {}))
        self.calls.append(call)
        result = self._handler(call)
        if isinstance(result, BaseException):
            raise result
        return result

    def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> FakeResponse:
        return self.request("GET", url, params=params, headers=headers, timeout=timeout)


@pytest.fixture()
def sleeps() -> list[float]:
    return []


@pytest.fixture()
def make_executor(sleeps: list[float]) -> Callable[..., RequestExecutor]:
    def factory(session: FakeSession, **kwargs: Any) -> RequestExecutor:
        return RequestExecutor(session=session, sleep=sleeps.append, **kwargs)

    return factory


@pytest.fixture()
def make_context(make_executor: Callable[..., RequestExecutor], sleeps: list[float]) -> Callable[..., PageFetchContext]:
    def factory(session: FakeSession, *, page_delay_seconds: float = 0.0, **executor_kwargs: Any) -> PageFetchContext:
        return PageFetchContext(
            executor=make_executor(session, **executor_kwargs),
            auth=AuthContext(headers={"Authorization": "Bearer test"}),
            page_delay_seconds=page_delay_seconds,
            sleep=sleeps.append,
        )

    return factory


@pytest.fixture()
def session_factory() -> Iterator[sessionmaker[Session]]:
    """
    In-memory SQLite shared across sessions so background jobs see the
    rows their trigger committed.
    """

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    try:
        yield factory
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def create_source(session_factory: sessionmaker[Session]) -> Callable[..., Source]:
    def factory(**overrides: Any) -> Source:
        values: dict[str, Any] = {
            "account_id": "acct-1",
            "name": "Acme Stripe",
            "integration_type": "stripe",
            "auth_config": {"api_key": "sk_test"},
        }
        values.update(overrides)
        with session_factory() as db:
            source = SourceRepository(db).create_source(**values)
            db.commit()
            return source

    return factory
