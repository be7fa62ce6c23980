from dataclasses import dataclass
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field


class ErrorKind(str, Enum):
    FORBIDDEN = "Forbidden"
    UPSTREAM_STATUS = "UpstreamStatus"
    NO_RESPONSE = "NoResponse"
    UNKNOWN = "Unknown"


ERROR_MESSAGES = {
    ErrorKind.FORBIDDEN: "Access forbidden. The server is blocking our requests.",
    ErrorKind.NO_RESPONSE: "No response received from server.",
    ErrorKind.UNKNOWN: "Error fetching data.",
}


@dataclass(frozen=True)
class FetchRequest:
    """
    One state of the retry loop for a single roll number.

    Fields:
        id        : Roll number being fetched.
        attempt   : Zero-based attempt index (0 = first try).
        use_proxy : Route this attempt through the CORS relay.
    """
    id: int
    attempt: int = 0
    use_proxy: bool = False


@dataclass
class FetchSuccess:
    id: int
    html: str
    attempts: int = 1


@dataclass
class FetchFailure:
    """
    Terminal failure after the retry loop gave up.

    Fields:
        id         : Roll number that was requested.
        error_kind : Classification of the last error seen.
        detail     : Message of the underlying exception.
        status     : Upstream HTTP status, when one was received.
        attempts   : Number of HTTP calls made before giving up.
    """
    id: int
    error_kind: ErrorKind
    detail: str
    status: int | None = None
    attempts: int = 1

    @property
    def message(self) -> str:
        if self.error_kind is ErrorKind.UPSTREAM_STATUS:
            return f"Server responded with status {self.status}."
        return ERROR_MESSAGES[self.error_kind]


FetchOutcome = FetchSuccess | FetchFailure


@dataclass
class ResultRecord:
    """What the viewer renders for one roll number: raw markup or an error fragment."""
    id: int
    html: str
    failed: bool = False


class ResultPayload(BaseModel):
    """JSON body of GET /api/result/{roll}."""

    model_config = ConfigDict(populate_by_name=True)

    roll_number: int = Field(alias="rollNumber")
    result: str | None = None
    error: str | None = None
    error_detail: str | None = Field(default=None, alias="errorDetail")

    @classmethod
    def from_outcome(cls, outcome: FetchOutcome) -> "ResultPayload":
        if isinstance(outcome, FetchSuccess):
            return cls(roll_number=outcome.id, result=outcome.html)
        return cls(roll_number=outcome.id, error=outcome.message, error_detail=outcome.detail)

    def to_json(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)
