"""Access credentials attached to approved bookings."""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from typing import Protocol

from charging.errors import InvalidArgumentError
from charging.models import Booking


class CredentialIssuer(Protocol):
    def issue(self, booking: Booking) -> str: ...


def credential_payload(booking: Booking) -> str:
    return (
        f"booking:{booking.id}|owner:{booking.owner_id}|station:{booking.station_id}"
        f"|date:{booking.reservation_date.isoformat()}|hour:{booking.reservation_hour}"
    )


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(text: str) -> bytes:
    return base64.urlsafe_b64decode(text + "=" * (-len(text) % 4))


class SignedPayloadIssuer:
    """Issues ``<payload>.<signature>`` tokens that an operator scan can verify offline."""

    def __init__(self, secret: str):
        if not secret:
            raise ValueError("Credential secret must not be empty.")
        self._secret = secret.encode("utf-8")

    def _sign(self, payload: bytes) -> str:
        return _b64encode(hmac.new(self._secret, payload, hashlib.sha256).digest())

    def issue(self, booking: Booking) -> str:
        payload = credential_payload(booking).encode("utf-8")
        return f"{_b64encode(payload)}.{self._sign(payload)}"

    def verify(self, token: str) -> dict[str, str]:
        encoded_payload, _, signature = token.partition(".")
        if not encoded_payload or not signature:
            raise InvalidArgumentError("Malformed booking credential.")
        try:
            payload = _b64decode(encoded_payload)
        except (binascii.Error, ValueError) as exc:
            raise InvalidArgumentError("Malformed booking credential.") from exc

        if not hmac.compare_digest(signature, self._sign(payload)):
            raise InvalidArgumentError("Booking credential signature mismatch.")

        fields: dict[str, str] = {}
        for part in payload.decode("utf-8").split("|"):
            name, _, value = part.partition(":")
            fields[name] = value
        return fields
