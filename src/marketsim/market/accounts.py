"""Toy account login and signup."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from marketsim.config_loader import AccountsConfig
from marketsim.constants import USERS_PATH
from marketsim.errors import ValidationError
from marketsim.market.models import UserAccount
from marketsim.store.base import DocumentStore

logger = logging.getLogger(__name__)


@dataclass
class LoginSession:
    """Who is signed in on this client."""

    username: str | None = None
    is_admin: bool = False

    @property
    def authenticated(self) -> bool:
        return self.username is not None


class AccountManager:
    """
    Plaintext credential checks against the `users` document.

    This is not a security boundary. The admin signs in with the configured
    credentials whether or not an admin account record exists.
    """

    def __init__(self, store: DocumentStore, config: AccountsConfig | None = None) -> None:
        self.store = store
        self.config = config or AccountsConfig()
        self.session = LoginSession()

    def login(self, users: dict[str, UserAccount], username: str, password: str) -> LoginSession:
        if username == self.config.admin_username and password == self.config.admin_password:
            self.session = LoginSession(username, is_admin=True)
        elif username in users and users[username].password == password:
            self.session = LoginSession(username, is_admin=False)
        else:
            raise ValidationError("Invalid username or password")
        logger.info(f"Logged in: {username}{' (admin)' if self.session.is_admin else ''}")
        return self.session

    async def signup(
        self,
        users: dict[str, UserAccount],
        username: str,
        password: str,
        confirm_password: str,
    ) -> UserAccount:
        """Create an account with the starting balance and sign in as it."""
        if not username or not password or not confirm_password:
            raise ValidationError("All fields are required")
        if password != confirm_password:
            raise ValidationError("Passwords do not match")
        if username in users or username == self.config.admin_username:
            raise ValidationError("Username already exists")
        if "/" in username:
            raise ValidationError("Username may not contain '/'")

        account = UserAccount(username, password=password, balance=self.config.signup_balance)
        await self.store.set(f"{USERS_PATH}/{username}", account.to_dict())
        self.session = LoginSession(username, is_admin=False)
        logger.info(f"Signed up: {username}")
        return account

    def logout(self) -> None:
        if self.session.authenticated:
            logger.info(f"Logged out: {self.session.username}")
        self.session = LoginSession()
