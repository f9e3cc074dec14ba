"""Status-driven outcome tables.

A few operations turn specific error statuses into ordinary results:

- bucket existence checks: 301 and 401 mean the bucket exists (just not for
  this caller), 404 means it does not;
- conditional reads (``If-Match``, ``If-None-Match``, ``If-Modified-Since``,
  ``If-Unmodified-Since``): 304 and 412 mean "nothing to return".

Classification looks at ``S3Error.http_status`` only. Any status not in a
table re-raises the original error.
"""

from __future__ import annotations

import logging
from typing import Callable, Generic, Mapping, ParamSpec, TypeVar

from s3_exchange.errors import S3Error

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")
P = ParamSpec("P")


class StatusTable(Generic[T]):
    """Maps S3Error status codes to outcomes."""

    def __init__(self, name: str, outcomes: Mapping[int, T]) -> None:
        self.name = name
        self._outcomes = dict(outcomes)

    def __contains__(self, status: int) -> bool:
        return status in self._outcomes

    @property
    def statuses(self) -> frozenset[int]:
        return frozenset(self._outcomes)

    def classify(self, error: S3Error) -> T:
        """Return the outcome for *error*'s status, or re-raise *error*."""
        if error.http_status not in self._outcomes:
            raise error
        outcome = self._outcomes[error.http_status]
        logger.debug("%s: status %s -> %r", self.name, error.http_status, outcome)
        return outcome

    def call(self, fn: Callable[P, R], *args: P.args, **kwargs: P.kwargs) -> R | T:
        """Call *fn*, classifying any S3Error it raises."""
        try:
            return fn(*args, **kwargs)
        except S3Error as e:
            return self.classify(e)


BUCKET_EXISTENCE: StatusTable[bool] = StatusTable(
    "bucket existence",
    {301: True, 401: True, 404: False},
)

CONDITIONAL_OUTCOME: StatusTable[None] = StatusTable(
    "conditional outcome",
    {304: None, 412: None},
)


def conditional(fn: Callable[P, R], *args: P.args, **kwargs: P.kwargs) -> R | None:
    """Call *fn*; a 304 or 412 S3Error becomes ``None``.

    Only for operations that expose conditional (``If-*``) parameters.
    """
    return CONDITIONAL_OUTCOME.call(fn, *args, **kwargs)
