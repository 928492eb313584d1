"""Domain-level exceptions for friendships, blocks and visibility."""

from __future__ import annotations


class SocialError(Exception):
	"""Base class for social feature errors."""

	reason: str = "unknown"
	retryable: bool = False

	def __init__(self, reason: str | None = None) -> None:
		super().__init__(reason or self.reason)
		if reason:
			self.reason = reason


class InvalidTarget(SocialError):
	reason = "self_target"


class AlreadyRelated(SocialError):
	reason = "already_related"


class NotFound(SocialError):
	reason = "not_found"


class Forbidden(SocialError):
	reason = "forbidden"


class Blocked(SocialError):
	reason = "blocked"


class StoreUnavailable(SocialError):
	reason = "store_unavailable"
	retryable = True
