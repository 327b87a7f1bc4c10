"""Wire schemas of the LNURL endpoints.

Shared by the server (serialisation) and the client driver (parsing) so the
field names cannot drift apart. Optional fields are omitted from the JSON
when unset.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from .enums import ResponseStatus


class LnurlResponse(BaseModel):
    """Base for every response body."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class StatusResponse(LnurlResponse):
    """``{status, reason?}``, also the body of every error response."""

    status: ResponseStatus
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == ResponseStatus.OK

    @classmethod
    def error(cls, reason: str) -> "StatusResponse":
        return cls(status=ResponseStatus.ERROR, reason=reason)


class ChannelRequestResponse(LnurlResponse):
    uri: str
    callback: str
    k1: str
    tag: str


class OpenChannelResponse(StatusResponse):
    mindepth: int | None = None
    channel_id: str | None = None
    outnum: int | None = None
    tx: str | None = None
    txid: str | None = None


class WithdrawRequestResponse(LnurlResponse):
    callback: str
    k1: str
    tag: str
    default_description: str | None = Field(default=None, alias="defaultDescription")
    min_withdrawable: int = Field(alias="minWithdrawable")
    max_withdrawable: int = Field(alias="maxWithdrawable")


class AuthChallengeResponse(LnurlResponse):
    k1: str


class AuthResultResponse(StatusResponse):
    event: str | None = None


class HealthResponse(LnurlResponse):
    status: str
    node_id: str
    outstanding_tokens: int
    payments: dict[str, int]
    events: dict[str, int]
