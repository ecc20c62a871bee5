"""Credential and authorization data types."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TokenContext(Enum):
    """Scope an access token is minted for."""

    JSONRPC = "jsonrpc"
    PUT = "put"
    CAMERA = "camera"


class AuthorizationState(Enum):
    """Progress of the device-authorization flow."""

    UNAUTHENTICATED = "unauthenticated"
    PAIRING_REQUESTED = "pairing_requested"
    AWAITING_USER_ACCEPTANCE = "awaiting_user_acceptance"
    AUTHORIZED = "authorized"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True, slots=True)
class ClientIdentity:
    """Static credentials identifying this client to the device."""

    client_id: str = "MakerWare"
    client_secret: str = "secret"


DEFAULT_IDENTITY = ClientIdentity()


@dataclass(frozen=True, slots=True)
class PairingHandle:
    """Codes returned when a pairing request is opened."""

    code: str | None
    answer_code: str


@dataclass(frozen=True, slots=True)
class AuthorizationCode:
    """Long-lived code granted once the user accepts pairing on the device."""

    value: str

    def __repr__(self) -> str:
        return "AuthorizationCode(value=<redacted>)"


@dataclass(frozen=True, slots=True)
class AccessToken:
    """Single-use token authorizing one connection in one context."""

    value: str
    context: TokenContext

    def __repr__(self) -> str:
        return f"AccessToken(value=<redacted>, context={self.context.value!r})"
