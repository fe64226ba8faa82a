class EngagementError(Exception):
    """Base class for errors surfaced by the engagement core."""


class ArticleNotSynchronizedError(EngagementError):
    """The article has no durable id yet, so it cannot carry comments."""

    def __init__(self, article_id=None):
        self.article_id = article_id
        super().__init__("The article has not been synchronized yet. Try again in a second.")


class GeneratorUnavailableError(EngagementError):
    """The positive-news generator is not configured or keeps failing."""


class CommentPostError(EngagementError):
    """A comment could not be posted; the message is shown to the user."""


class SessionUnavailableError(EngagementError):
    """The session store could not be read; the signed-in user is unknown."""
