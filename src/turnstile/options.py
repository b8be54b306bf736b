"""Options recognized by the authenticate middleware.

Field names are snake_case; the camelCase spellings used by other
authentication frameworks (``successRedirect``, ``failWithError``...) are
accepted as aliases. Any field Turnstile does not know about is kept and
forwarded verbatim to the strategy.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class FlashMessage(BaseModel):
    """A flash message override with an optional type."""

    model_config = ConfigDict(extra="forbid")

    type: str | None = None
    message: str | None = None


class AuthenticateOptions(BaseModel):
    """Per-route dispatch options.

    Example:
        AuthenticateOptions(success_redirect="/", failure_redirect="/login")
        AuthenticateOptions.model_validate({"failureFlash": "Invalid password"})
    """

    model_config = ConfigDict(
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
    )

    success_redirect: str | None = None
    success_message: bool | str | None = None
    success_flash: bool | str | FlashMessage | None = None
    success_return_to_or_redirect: str | None = None
    failure_redirect: str | None = None
    failure_message: bool | str | None = None
    failure_flash: bool | str | FlashMessage | None = None
    fail_with_error: bool = False
    assign_property: str | None = None
    auth_info: bool = True
    session: bool = True

    @property
    def extras(self) -> dict[str, Any]:
        """Strategy-specific fields not interpreted by the dispatcher."""
        return dict(self.model_extra or {})

    def get(self, name: str, default: Any = None) -> Any:
        """Look up a known field or a strategy-specific extra by name."""
        if name in type(self).model_fields:
            return getattr(self, name)
        return (self.model_extra or {}).get(name, default)


def coerce_options(options: AuthenticateOptions | dict[str, Any] | None) -> AuthenticateOptions:
    """Turn a mapping (or nothing) into a validated AuthenticateOptions."""
    if options is None:
        return AuthenticateOptions()
    if isinstance(options, AuthenticateOptions):
        return options
    return AuthenticateOptions.model_validate(options)
