from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Optional

from .error_codes import ErrorCode

ISO_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S"


class ScrapeStatus(str, Enum):
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    ERRORED = "errored"
    NO_CASE_FOUND = "noCaseFound"

    @property
    def is_terminal(self) -> bool:
        return self is not ScrapeStatus.RUNNING


def _format_datetime(value: Optional[datetime]) -> Optional[str]:
    return value.strftime(ISO_DATETIME_FORMAT) if value is not None else None


def _parse_datetime(value: Any) -> Optional[datetime]:
    if not value:
        return None
    return datetime.strptime(str(value), ISO_DATETIME_FORMAT)


@dataclass(frozen=True)
class ScrapeData:
    next_court_datetime: Optional[datetime] = None
    prosecutor: Optional[str] = None
    defendant: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "nextCourtDateTime": _format_datetime(self.next_court_datetime),
            "prosecutor": self.prosecutor,
            "defendant": self.defendant,
        }

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ScrapeData":
        return cls(
            next_court_datetime=_parse_datetime(payload.get("nextCourtDateTime")),
            prosecutor=payload.get("prosecutor"),
            defendant=payload.get("defendant"),
        )


@dataclass(frozen=True)
class ScrapeState:
    """The state of one scrape job.

    Exactly one variant holds: ``data`` is only set for ``succeeded`` and
    ``error``/``error_code`` only for ``errored``. Use the constructors below
    rather than building instances by hand.
    """

    case_id: str
    status: ScrapeStatus
    data: Optional[ScrapeData] = None
    error: Optional[str] = None
    error_code: Optional[str] = None

    def __post_init__(self) -> None:
        if self.status is ScrapeStatus.SUCCEEDED and self.data is None:
            raise ValueError("succeeded state requires data")
        if self.status is not ScrapeStatus.SUCCEEDED and self.data is not None:
            raise ValueError(f"{self.status.value} state cannot carry data")
        if self.status is ScrapeStatus.ERRORED and not self.error:
            raise ValueError("errored state requires a reason")
        if self.status is not ScrapeStatus.ERRORED and (self.error or self.error_code):
            raise ValueError(f"{self.status.value} state cannot carry an error")

    @classmethod
    def running(cls, case_id: str) -> "ScrapeState":
        return cls(case_id=case_id, status=ScrapeStatus.RUNNING)

    @classmethod
    def succeeded(cls, case_id: str, data: ScrapeData) -> "ScrapeState":
        return cls(case_id=case_id, status=ScrapeStatus.SUCCEEDED, data=data)

    @classmethod
    def errored(
        cls, case_id: str, error: str, *, error_code: str = ErrorCode.INTERNAL
    ) -> "ScrapeState":
        return cls(
            case_id=case_id,
            status=ScrapeStatus.ERRORED,
            error=error or "Unknown error",
            error_code=error_code,
        )

    @classmethod
    def no_case_found(cls, case_id: str) -> "ScrapeState":
        return cls(case_id=case_id, status=ScrapeStatus.NO_CASE_FOUND)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"caseId": self.case_id, "state": self.status.value}
        if self.data is not None:
            payload["data"] = self.data.to_dict()
        if self.error is not None:
            payload["error"] = self.error
            payload["errorCode"] = self.error_code
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> "ScrapeState":
        """Rebuild a state from :meth:`to_dict` output.

        Raises ``ValueError`` (or ``KeyError``) for payloads that do not
        describe a valid variant.
        """

        status = ScrapeStatus(payload["state"])
        data = payload.get("data")
        return cls(
            case_id=str(payload["caseId"]),
            status=status,
            data=ScrapeData.from_dict(data) if isinstance(data, dict) else None,
            error=payload.get("error"),
            error_code=payload.get("errorCode"),
        )


__all__ = ["ScrapeStatus", "ScrapeData", "ScrapeState", "ISO_DATETIME_FORMAT"]
