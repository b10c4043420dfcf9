"""
core/models.py -- Input rules for the login and registration forms.

A domain rule, not an API contract: api/ uses these models as request bodies
and web/ builds them from form fields, so both surfaces reject the same input
with the same messages. Nothing here touches the credential store -- a
submission that passes these checks can still collide with an existing
username or email.

Every rule is a field_validator raising ValueError with the user-facing
message, so form_errors() can hand the messages straight to a template.
"""

import re

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

# Applied with re.fullmatch: a trailing newline must not slip past an anchor.
USERNAME_PATTERN = r"[A-Za-z0-9_-]+"
EMAIL_PATTERN = r"[^@\s]+@[^@\s]+\.[^@\s]+"


class LoginForm(BaseModel):
    """Username/password login. Empty strings are allowed through -- they fail
    as a credential mismatch, not as a validation error."""

    model_config = ConfigDict(frozen=True)

    username: str
    password: str

    @field_validator("username", "password")
    @classmethod
    def cap_length(cls, value: str) -> str:
        if len(value) > 255:
            raise ValueError("Username and password must be at most 255 characters.")
        return value


class RegistrationForm(BaseModel):
    """New account submission.

    The strategy layer trusts these rules: it does not re-check lengths or
    character classes.
    """

    model_config = ConfigDict(frozen=True, str_strip_whitespace=False)

    username: str
    email: str
    password: str
    password_match: str

    @field_validator("username")
    @classmethod
    def check_username(cls, value: str) -> str:
        if not value:
            raise ValueError("Username field cannot be empty.")
        if not 4 <= len(value) <= 15:
            raise ValueError("Username must be between 4-15 characters long.")
        if not re.fullmatch(USERNAME_PATTERN, value):
            raise ValueError("Username can only contain letters, numbers, underscores or dashes.")
        return value

    @field_validator("email")
    @classmethod
    def check_email(cls, value: str) -> str:
        if not re.fullmatch(EMAIL_PATTERN, value):
            raise ValueError("The email you entered is invalid, please try again.")
        if not 4 <= len(value) <= 100:
            raise ValueError("Email address must be between 4-100 characters long, please try again.")
        return value

    @field_validator("password")
    @classmethod
    def check_password(cls, value: str) -> str:
        if not 8 <= len(value) <= 100:
            raise ValueError("Password must be between 8-100 characters long.")
        if (
            " " in value
            or not re.search(r"[a-z]", value)
            or not re.search(r"[A-Z]", value)
            or not re.search(r"\d", value)
            or not re.search(r"[^a-zA-Z0-9]", value)
        ):
            raise ValueError(
                "Password must include one lowercase character, one uppercase character, "
                "a number, and a special character, and no spaces."
            )
        return value

    @model_validator(mode="after")
    def check_match(self) -> "RegistrationForm":
        if self.password_match != self.password:
            raise ValueError("Passwords do not match, please try again.")
        return self


def form_errors(exc: ValidationError) -> list[str]:
    """Flatten a ValidationError into user-facing messages, in field order."""
    messages: list[str] = []
    for err in exc.errors():
        if err.get("type") == "value_error" and "error" in err.get("ctx", {}):
            messages.append(str(err["ctx"]["error"]))
        else:
            field = ".".join(str(p) for p in err.get("loc", ())) or "form"
            messages.append(f"{field}: {err.get('msg', 'invalid value')}")
    return messages
