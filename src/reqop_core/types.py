from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Union

import httpx


# Sends one prepared request; the response must be returned unread (streaming).
SendFn = Callable[[httpx.Request], Awaitable[httpx.Response]]

# Decide if an exception is transient (should retry)
TransientClassifier = Callable[[BaseException], bool]


class Strategy(Protocol):
    """Decides whether attempt number ``attempt`` (0-based) may run.

    ``error`` is the failure of the previous attempt, ``None`` before the first.
    May block (e.g. sleep for a backoff) before answering.
    """

    def __call__(
        self, attempt: int, error: Optional[BaseException]
    ) -> Union[bool, Awaitable[bool]]: ...


@dataclass
class RequestDescriptor:
    method: str
    url: Union[str, httpx.URL]
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
