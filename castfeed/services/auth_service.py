"""
Account management: sign-in/up/out, profiles and credential validation.
"""

import logging
import re
from typing import Any, Optional

from pydantic import BaseModel, Field

from castfeed.api.backend import BackendClient
from castfeed.exceptions import AuthenticationError, ValidationError
from castfeed.models.podcast import Profile
from castfeed.utils.errors import with_error_handling

log = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")
MIN_PASSWORD_LENGTH = 6
MIN_USERNAME_LENGTH = 3

AUTH_ERROR_MESSAGES = {
    "Invalid login credentials": "The email address or password is incorrect.",
    "User already registered": "This email address is already registered.",
    "Email not confirmed": (
        "Your email address has not been confirmed. Please check your inbox."
    ),
}

# Substring matches, checked in order after the exact matches above.
AUTH_ERROR_FRAGMENTS = [
    ("duplicate key value", "This username is already taken."),
    (
        "violates foreign key constraint",
        "Something went wrong while creating your account. Please try again.",
    ),
    (
        "Email rate limit exceeded",
        "Too many emails were sent. Please wait a while and try again.",
    ),
]


class ValidationResult(BaseModel):
    is_valid: bool
    errors: dict[str, str] = Field(default_factory=dict)


def validate_credentials(
    email: str, password: str, username: Optional[str] = None
) -> ValidationResult:
    """
    Checks sign-in/sign-up form input. The username is only checked when given.
    """
    errors: dict[str, str] = {}
    if not EMAIL_PATTERN.match((email or "").strip()):
        errors["email"] = "Enter a valid email address."
    if len(password or "") < MIN_PASSWORD_LENGTH:
        errors["password"] = (
            f"The password must be at least {MIN_PASSWORD_LENGTH} characters."
        )
    if username is not None:
        username = username.strip()
        if len(username) < MIN_USERNAME_LENGTH:
            errors["username"] = (
                f"The username must be at least {MIN_USERNAME_LENGTH} characters."
            )
        elif not USERNAME_PATTERN.match(username):
            errors["username"] = (
                "The username may only contain letters, digits and underscores."
            )
    return ValidationResult(is_valid=not errors, errors=errors)


def auth_error_message(error: BaseException) -> str:
    """Maps an auth/backend failure to text suitable for the user."""
    message = str(error)
    if message in AUTH_ERROR_MESSAGES:
        return AUTH_ERROR_MESSAGES[message]
    for fragment, text in AUTH_ERROR_FRAGMENTS:
        if fragment in message:
            return text
    return message or "An unknown error occurred."


class AuthService:
    """Wraps the backend authenticator and the profiles table."""

    def __init__(self, backend: BackendClient):
        self.backend = backend
        self.profile: Optional[Profile] = None

    @property
    def is_signed_in(self) -> bool:
        return self.backend.authenticator.is_signed_in

    @staticmethod
    def _check(result: ValidationResult) -> None:
        if not result.is_valid:
            field, message = next(iter(result.errors.items()))
            raise ValidationError(message, field=field)

    async def sign_in(self, email: str, password: str) -> Optional[Profile]:
        """
        Signs in and loads the user's profile.

        Raises:
            ValidationError: If the email or password is malformed.
            AuthenticationError: If the backend rejects the credentials.
        """
        self._check(validate_credentials(email, password))
        try:
            await self.backend.authenticator.sign_in(email.strip(), password)
        except AuthenticationError as e:
            raise AuthenticationError(auth_error_message(e)) from e
        self.profile = await self.load_profile(self.backend.user_id)
        return self.profile

    async def sign_up(self, email: str, password: str, username: str) -> Optional[Profile]:
        """
        Creates an account and, once a session exists, its profile row.

        Returns:
            The profile, or None when the account still awaits email
            confirmation.
        """
        self._check(validate_credentials(email, password, username))
        username = username.strip()
        try:
            await self.backend.authenticator.sign_up(
                email.strip(), password, {"username": username}
            )
        except AuthenticationError as e:
            raise AuthenticationError(auth_error_message(e)) from e

        if not self.is_signed_in:
            log.info("Account created; confirm your email address to sign in.")
            return None

        user_id = self.backend.user_id
        profile = await self.load_profile(user_id)
        if profile is None:
            profile = await self._create_profile(user_id, username)
        self.profile = profile
        return profile

    async def _create_profile(self, user_id: str, username: str) -> Profile:
        async def operation() -> Profile:
            rows = await self.backend.insert(
                "profiles",
                {"id": user_id, "username": username, "display_name": username},
            )
            return Profile.model_validate(rows[0])

        log.debug(f"Creating profile for user {user_id}")
        return await with_error_handling(operation, "create_profile")

    async def sign_out(self) -> None:
        await self.backend.authenticator.sign_out()
        self.profile = None
        log.info("Signed out.")

    async def load_profile(self, user_id: Optional[str]) -> Optional[Profile]:
        """Returns the profile for `user_id`, or None if there is none."""
        if not user_id:
            return None

        async def operation() -> Optional[Profile]:
            row = await self.backend.select_one("profiles", {"id": f"eq.{user_id}"})
            return Profile.model_validate(row) if row else None

        return await with_error_handling(operation, "load_profile")

    async def update_profile(self, **changes: Any) -> Profile:
        """
        Updates the signed-in user's profile with the given non-None fields.
        """
        user_id = self.backend.authenticator.require_user()
        values = {k: v for k, v in changes.items() if v is not None}
        if "username" in values:
            username = str(values["username"]).strip()
            if len(username) < MIN_USERNAME_LENGTH or not USERNAME_PATTERN.match(
                username
            ):
                raise ValidationError(
                    "The username may only contain letters, digits and underscores "
                    f"and must be at least {MIN_USERNAME_LENGTH} characters.",
                    field="username",
                )
            values["username"] = username
        if not values:
            raise ValidationError("Nothing to update.")

        async def operation() -> Profile:
            rows = await self.backend.update(
                "profiles", {"id": f"eq.{user_id}"}, values
            )
            if not rows:
                raise ValidationError("Your profile does not exist yet.")
            return Profile.model_validate(rows[0])

        self.profile = await with_error_handling(operation, "update_profile")
        return self.profile
