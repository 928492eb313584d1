"""Social relationship domain exports."""

from . import audit  # noqa: F401
from .blocks import BlockService  # noqa: F401
from .container import SocialContainer, build_document_store  # noqa: F401
from .exceptions import (  # noqa: F401
	AlreadyRelated,
	Blocked,
	Forbidden,
	InvalidTarget,
	NotFound,
	SocialError,
	StoreUnavailable,
)
from .friendships import FriendshipService  # noqa: F401
from .models import (  # noqa: F401
	Accepted,
	Block,
	Bucket,
	ContentItem,
	Friendship,
	FriendshipStatus,
	Pending,
	RelationshipStatus,
	UserAction,
	UserRef,
)
from .store import RelationshipStore  # noqa: F401
from .view import RelationshipBuckets, RelationshipView, compute_buckets, snapshot_buckets  # noqa: F401
from .visibility import VisibilityResolver, ViewerGraph, VisibleContent, filter_content  # noqa: F401
