from __future__ import annotations

import json
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    model_serializer,
    model_validator,
)


class ApiKeyCredential(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["api_key"] = "api_key"
    key: str

    def materialize(self) -> str:
        return self.key

    def is_expired(self, now_ms: int) -> bool:
        return False

    def __repr__(self) -> str:
        return "ApiKeyCredential(key=REDACTED)"


class SetupTokenCredential(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["setup_token"] = "setup_token"
    token: str

    def materialize(self) -> str:
        return self.token

    def is_expired(self, now_ms: int) -> bool:
        return False

    def __repr__(self) -> str:
        return "SetupTokenCredential(token=REDACTED)"


_OAUTH_FIELD_ALIASES = {
    "projectId": "project_id",
    "accountId": "account_id",
}


class OAuthCredential(BaseModel):
    """OAuth token pair; ``expires`` is epoch milliseconds."""

    model_config = ConfigDict(frozen=True)

    type: Literal["oauth"] = "oauth"
    refresh: str
    access: str
    expires: int
    project_id: str | None = None
    account_id: str | None = None
    email: str | None = None
    extra: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def _collect_extra_fields(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        known = set(cls.model_fields)
        collected: dict[str, Any] = {}
        extra = dict(data.get("extra") or {})
        for key, value in data.items():
            if key == "extra":
                continue
            target = _OAUTH_FIELD_ALIASES.get(key, key)
            if target in known:
                collected[target] = value
            else:
                extra[key] = value
        collected["extra"] = extra
        return collected

    @model_serializer(mode="plain")
    def _flatten(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "type": self.type,
                "refresh": self.refresh,
                "access": self.access,
                "expires": self.expires,
            }
        )
        if self.project_id is not None:
            payload["projectId"] = self.project_id
        if self.account_id is not None:
            payload["accountId"] = self.account_id
        if self.email is not None:
            payload["email"] = self.email
        return payload

    def materialize(self) -> str:
        # Google Cloud Code Assist clients expect the project next to the token.
        if self.project_id:
            return json.dumps(
                {"token": self.access, "projectId": self.project_id},
                separators=(",", ":"),
            )
        return self.access

    def is_expired(self, now_ms: int) -> bool:
        return now_ms >= self.expires

    def expires_within(self, now_ms: int, threshold_ms: int) -> bool:
        return self.expires - now_ms < threshold_ms

    def __repr__(self) -> str:
        return (
            f"OAuthCredential(expires={self.expires}, project_id={self.project_id!r}, "
            "access=REDACTED, refresh=REDACTED)"
        )


Credential = Annotated[
    Union[ApiKeyCredential, OAuthCredential, SetupTokenCredential],
    Field(discriminator="type"),
]

CREDENTIAL_ADAPTER: TypeAdapter[Credential] = TypeAdapter(Credential)


def parse_credential(raw: Any) -> Credential:
    return CREDENTIAL_ADAPTER.validate_python(raw)


def dump_credential(credential: Credential) -> dict[str, Any]:
    return CREDENTIAL_ADAPTER.dump_python(credential)


# -- Auth method descriptors (onboarding metadata, not live credentials)


class ApiKeyMethod(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: Literal["api_key"] = "api_key"
    env_var: str | None = None
    hint: str | None = None


class OAuthMethod(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: Literal["oauth"] = "oauth"
    hint: str | None = None


class SetupTokenMethod(BaseModel):
    model_config = ConfigDict(frozen=True)

    method: Literal["setup_token"] = "setup_token"
    hint: str | None = None


AuthMethod = Annotated[
    Union[ApiKeyMethod, OAuthMethod, SetupTokenMethod],
    Field(discriminator="method"),
]
