"""Authenticated asyncpraw session for the moderated subreddit."""

import logging
from typing import Dict, List, Optional

import asyncpraw
from asyncpraw.models import Subreddit
from asyncprawcore.exceptions import AsyncPrawcoreException

from comment_mop.config import Config
from comment_mop.models.mapping import redditor_to_user
from comment_mop.models.node import ModeratorUser

logger = logging.getLogger(__name__)


class RedditClient:
    """
    Owns the asyncpraw session comment-mop acts through.

    Every removal and lock is performed by the configured account, so
    ``initialize`` refuses to hand out a session unless that account
    moderates ``config.subreddit``.
    """

    def __init__(self, config: Config):
        self.config = config
        self.account: Optional[ModeratorUser] = None
        self._reddit: Optional[asyncpraw.Reddit] = None
        self._subreddits: Dict[str, Subreddit] = {}

    @property
    def reddit(self) -> asyncpraw.Reddit:
        """The authenticated asyncpraw instance."""
        if not self._reddit:
            raise ValueError("Reddit client not initialized")
        return self._reddit

    def _missing_credentials(self) -> List[str]:
        credentials = {
            "REDDIT_CLIENT_ID": self.config.client_id,
            "REDDIT_CLIENT_SECRET": self.config.client_secret,
            "REDDIT_USERNAME": self.config.username,
            "REDDIT_PASSWORD": self.config.password,
        }
        return [name for name, value in credentials.items() if not value]

    async def initialize(self) -> ModeratorUser:
        """
        Log in and check that the account moderates the configured subreddit.

        Returns:
            The account mops run as

        Raises:
            ValueError: If credentials are missing, login fails, or the
                account is not a moderator of the subreddit
        """
        if self._reddit and self.account:
            return self.account

        missing = self._missing_credentials()
        if missing:
            raise ValueError(f"Missing Reddit API credentials: {', '.join(missing)}")

        subreddit_name = self.config.subreddit
        logger.info(f"Connecting to Reddit for r/{subreddit_name}")
        self._reddit = asyncpraw.Reddit(
            client_id=self.config.client_id,
            client_secret=self.config.client_secret,
            username=self.config.username,
            password=self.config.password,
            user_agent=self.config.user_agent,
        )

        try:
            me = await self._reddit.user.me()
            account = redditor_to_user(me)
            subreddit = await self.get_subreddit(subreddit_name)
            moderators = await subreddit.moderator(redditor=account.username)
        except AsyncPrawcoreException as e:
            await self.close()
            logger.error(f"Reddit login failed: {e}")
            raise ValueError(f"Reddit authentication failed: {e}") from e

        if not moderators:
            await self.close()
            raise ValueError(f"u/{account.username} is not a moderator of r/{subreddit_name}")

        self.account = account
        logger.info(f"Authenticated as u/{account.username}, moderator of r/{subreddit_name}")
        return account

    async def get_subreddit(self, subreddit_name: str) -> Subreddit:
        """Lazy subreddit object, one per name."""
        key = subreddit_name.lower()
        if key not in self._subreddits:
            self._subreddits[key] = await self.reddit.subreddit(subreddit_name)
        return self._subreddits[key]

    async def close(self) -> None:
        if self._reddit:
            logger.info("Closing Reddit session")
            await self._reddit.close()
        self._reddit = None
        self.account = None
        self._subreddits = {}
