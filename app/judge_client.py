import asyncio
from dataclasses import dataclass
from enum import IntEnum
from typing import Awaitable, Callable, Optional, Union

import httpx

from config import judge_settings
from errors import TransportError
from logger_config import logger


class JudgeStatus(IntEnum):
    """Judge0 status ids. Anything >= 3 is terminal."""

    UNKNOWN_PENDING = 0
    IN_QUEUE = 1
    PROCESSING = 2
    ACCEPTED = 3
    WRONG_ANSWER = 4
    TIME_LIMIT_EXCEEDED = 5
    COMPILATION_ERROR = 6
    RUNTIME_ERROR_SIGSEGV = 7
    RUNTIME_ERROR_SIGXFSZ = 8
    RUNTIME_ERROR_SIGFPE = 9
    RUNTIME_ERROR_SIGABRT = 10
    RUNTIME_ERROR_NZEC = 11
    RUNTIME_ERROR_OTHER = 12
    INTERNAL_ERROR = 13
    EXEC_FORMAT_ERROR = 14
    UNKNOWN_TERMINAL = 99

    @classmethod
    def from_id(cls, status_id: int) -> "JudgeStatus":
        try:
            return cls(status_id)
        except ValueError:
            # Ids the judge added after this table was written keep the >= 3 rule
            return cls.UNKNOWN_TERMINAL if status_id >= cls.ACCEPTED else cls.UNKNOWN_PENDING

    @property
    def is_terminal(self) -> bool:
        return self >= JudgeStatus.ACCEPTED

    @property
    def is_accepted(self) -> bool:
        return self is JudgeStatus.ACCEPTED


@dataclass(frozen=True)
class JudgeVerdict:
    status: JudgeStatus
    description: str
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    compile_output: Optional[str] = None

    @classmethod
    def from_response(cls, data: dict) -> "JudgeVerdict":
        """Build a verdict from a judge response body.

        Raises TransportError when the body does not have the verdict shape.
        """
        try:
            status = data.get("status") or {}
            status_id = int(status.get("id", JudgeStatus.UNKNOWN_PENDING))
            return cls(
                status=JudgeStatus.from_id(status_id),
                description=status.get("description") or "",
                stdout=data.get("stdout"),
                stderr=data.get("stderr"),
                compile_output=data.get("compile_output"),
            )
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise TransportError(f"Malformed judge verdict: {data!r}") from e


@dataclass(frozen=True)
class Terminal:
    verdict: JudgeVerdict
    attempts: int


@dataclass(frozen=True)
class TimedOut:
    attempts: int
    last_verdict: Optional[JudgeVerdict] = None


PollOutcome = Union[Terminal, TimedOut]


class JudgeClient:
    """Thin request/poll wrapper around a Judge0-compatible execution service."""

    def __init__(
        self,
        base_url: str = judge_settings.JUDGE_API_URL,
        api_key: Optional[str] = judge_settings.JUDGE_API_KEY,
        timeout: float = judge_settings.REQUEST_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._headers = {"Content-Type": "application/json"}
        if api_key:
            self._headers["X-Auth-Token"] = api_key
        self._timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self):
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "JudgeClient":
        return self

    async def __aexit__(self, *exc_info):
        await self.close()

    async def dispatch(self, code: str, language_id: int, stdin: str, expected_output: str = "") -> str:
        payload = {
            "source_code": code,
            "language_id": language_id,
            "stdin": stdin,
            "expected_output": expected_output,
        }
        try:
            response = await self._get_client().post(self.base_url, json=payload, headers=self._headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Judge dispatch failed: {e}")
            raise TransportError(f"Unable to reach judge: {e}") from e

        if not response.is_success:
            logger.warning(f"Judge dispatch returned HTTP {response.status_code}")
            raise TransportError(f"Judge dispatch returned HTTP {response.status_code}")

        try:
            token = response.json().get("token")
        except (AttributeError, ValueError) as e:
            raise TransportError("Judge dispatch returned a malformed body") from e
        if not isinstance(token, str) or not token:
            raise TransportError("Judge did not return a submission token")
        return token

    async def fetch_result(self, token: str) -> JudgeVerdict:
        try:
            response = await self._get_client().get(f"{self.base_url}/{token}", headers=self._headers)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Judge poll failed for {token}: {e}")
            raise TransportError(f"Unable to reach judge: {e}") from e

        if not response.is_success:
            logger.warning(f"Judge poll for {token} returned HTTP {response.status_code}")
            raise TransportError(f"Judge poll returned HTTP {response.status_code}")

        try:
            return JudgeVerdict.from_response(response.json())
        except ValueError as e:
            raise TransportError("Judge poll returned invalid JSON") from e


async def poll_until_terminal(
    judge: JudgeClient,
    token: str,
    interval: float = judge_settings.POLL_INTERVAL_SECONDS,
    max_attempts: int = judge_settings.POLL_MAX_ATTEMPTS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> PollOutcome:
    """Poll ``token`` until a terminal verdict appears or the attempt budget runs out.

    A TransportError from the judge propagates to the caller.
    """
    last_verdict = None
    for attempt in range(1, max_attempts + 1):
        await sleep(interval)
        last_verdict = await judge.fetch_result(token)
        if last_verdict.status.is_terminal:
            return Terminal(verdict=last_verdict, attempts=attempt)
    logger.warning(f"Judge token {token} still pending after {max_attempts} polls")
    return TimedOut(attempts=max_attempts, last_verdict=last_verdict)
