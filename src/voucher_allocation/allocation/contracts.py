"""Request/response contracts for voucher allocation."""
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from urllib.parse import quote

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from voucher_allocation.core.clock import ensure_utc

from .errors import ValidationError

ACCOUNT_PATTERN = re.compile(r"^0x[a-fA-F0-9]{40}$")
ZERO_WIDTH = {"\u200b", "\u200c", "\u200d", "\ufeff"}


def normalize_account_id(value: Any) -> str:
    """Return the canonical (lower-case) account address or raise ``ValueError``."""

    if not isinstance(value, str):
        raise ValueError("ACCOUNT_ID_INVALID|account id must be a string")
    text = unicodedata.normalize("NFKC", value)
    text = "".join(ch for ch in text if ch not in ZERO_WIDTH).strip()
    if not ACCOUNT_PATTERN.fullmatch(text):
        raise ValueError("ACCOUNT_ID_INVALID|expected a 0x-prefixed 40 hex digit address")
    return text.lower()


def build_verification_url(voucher_id: str, base: str) -> str:
    return f"{base}?voucherId={quote(voucher_id, safe='')}"


class AllocationRequest(BaseModel):
    """DTO carrying allocation inputs with backward compatible aliases."""

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    account_id: str = Field(validation_alias=AliasChoices("accountId", "account_id", "userAddress"))

    @field_validator("account_id", mode="before")
    @classmethod
    def _normalize_account(cls, value: Any) -> str:
        return normalize_account_id(value)

    @classmethod
    def parse(cls, raw: Any) -> "AllocationRequest":
        """Build a request from a bare account id or a mapping.

        Raises :class:`~voucher_allocation.allocation.errors.ValidationError`
        instead of pydantic's error type.
        """

        if isinstance(raw, cls):
            return raw
        data = raw if isinstance(raw, dict) else {"accountId": raw}
        try:
            return cls.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(_first_message(exc)) from exc


def _first_message(exc: PydanticValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid account id"
    message = str(errors[0].get("msg", "Invalid account id"))
    return message.split("|", 1)[-1]


@dataclass(frozen=True, slots=True)
class PoolAnalytics:
    """Voucher counts by status."""

    available: int
    assigned: int
    verified: int
    redeemed: int

    @property
    def total(self) -> int:
        return self.available + self.assigned + self.verified

    def by_status(self) -> dict[str, int]:
        return {"available": self.available, "assigned": self.assigned, "verified": self.verified}

    def to_payload(self) -> dict[str, int]:
        return {
            "total": self.total,
            "available": self.available,
            "assigned": self.assigned,
            "verified": self.verified,
            "redeemed": self.redeemed,
        }


@dataclass(frozen=True, slots=True)
class VoucherSnapshot:
    """Immutable copy of the fields returned to the caller."""

    voucher_id: str
    status: str
    is_redeemed: bool
    owner_account: str | None
    assigned_at: datetime | None
    expires_at: datetime | None
    verified_at: datetime | None

    @classmethod
    def from_model(cls, model: Any) -> "VoucherSnapshot":
        return cls(
            voucher_id=model.voucher_id,
            status=model.status,
            is_redeemed=bool(model.is_redeemed),
            owner_account=model.owner_account,
            assigned_at=ensure_utc(model.assigned_at),
            expires_at=ensure_utc(model.expires_at),
            verified_at=ensure_utc(model.verified_at),
        )


@dataclass(frozen=True, slots=True)
class AllocationSuccess:
    """Terminal success of an allocation request.

    ``reused`` is true when the account already held a live voucher and nothing
    was written.
    """

    voucher: VoucherSnapshot
    verification_url: str
    reused: bool
    attempts: int = 0
    analytics: PoolAnalytics | None = None

    @property
    def voucher_id(self) -> str:
        return self.voucher.voucher_id

    @property
    def status(self) -> str:
        return self.voucher.status

    def to_payload(self) -> dict[str, Any]:
        voucher = self.voucher
        body: dict[str, Any] = {
            "voucherId": voucher.voucher_id,
            "verificationUrl": self.verification_url,
            "status": voucher.status,
            "isVerified": voucher.is_redeemed,
            "verifiedAt": _iso(voucher.verified_at),
            "expiresAt": _iso(voucher.expires_at),
            "assignedAt": _iso(voucher.assigned_at),
            "reused": self.reused,
        }
        if self.analytics is not None:
            body["analytics"] = self.analytics.to_payload()
        return body


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


__all__ = [
    "ACCOUNT_PATTERN",
    "AllocationRequest",
    "AllocationSuccess",
    "PoolAnalytics",
    "VoucherSnapshot",
    "build_verification_url",
    "normalize_account_id",
]
