"""
Board domain records for the Ahmo Wall board core.

Documents arrive from the store as plain dictionaries; these dataclasses are
the typed view the logic layer works with. ``from_dict`` is lenient about
missing fields (older documents predate several of them) while ``to_dict``
always writes the full shape.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional


class Privacy(str, Enum):
    """Board privacy policy."""
    PUBLIC = "public"
    PRIVATE = "private"
    PASSWORD = "password"


class GuestPermission(str, Enum):
    """What non-owners may do on a board they can read."""
    EDIT = "edit"
    VIEW = "view"


class PostStatus(str, Enum):
    """Moderation status of a post or comment."""
    NONE = "none"
    PENDING = "pending"
    APPROVED = "approved"


class Layout(str, Enum):
    """Board layout. Shelf and stream boards are sectioned."""
    SHELF = "shelf"
    WALL = "wall"
    GRID = "grid"
    STREAM = "stream"


SECTIONED_LAYOUTS = (Layout.SHELF, Layout.STREAM)

# Older documents mark anonymous authors with this uid instead of null
LEGACY_ANONYMOUS_UID = "anonymous"


# Stand-in for timestamps that are missing or cannot be read
EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def to_datetime(value: Any) -> datetime:
    """
    Coerce a stored timestamp into a timezone-aware datetime.

    Accepts datetimes, ISO strings, epoch seconds and ``{"seconds": n}``
    mappings. Anything missing or unparseable becomes ``EPOCH`` so the
    same document always yields the same time and sorts first.
    """
    if value is None:
        return EPOCH
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, dict) and 'seconds' in value:
        return datetime.fromtimestamp(value['seconds'], tz=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value)
        except ValueError:
            return EPOCH
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return EPOCH


@dataclass
class Author:
    """Author stamp carried by posts and comments."""
    uid: Optional[str]
    display_name: str
    photo_url: str = ""

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> 'Author':
        data = data or {}
        uid = data.get('uid')
        if uid == LEGACY_ANONYMOUS_UID:
            uid = None
        return cls(
            uid=uid,
            display_name=data.get('display_name', ''),
            photo_url=data.get('photo_url', '') or '',
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'uid': self.uid,
            'display_name': self.display_name,
            'photo_url': self.photo_url,
        }


@dataclass
class Attachment:
    """A media item hosted by the object storage, or an external link."""
    type: str
    url: Optional[str] = None
    public_id: Optional[str] = None
    resource_type: Optional[str] = None
    delete_token: Optional[str] = None
    thumbnail_url: Optional[str] = None
    format: Optional[str] = None
    share_url: Optional[str] = None
    name: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Attachment':
        known = {k: data.get(k) for k in (
            'url', 'public_id', 'resource_type', 'delete_token',
            'thumbnail_url', 'format', 'share_url', 'name',
        )}
        return cls(type=data.get('type', 'link'), **known)

    def to_dict(self) -> Dict[str, Any]:
        return {k: v for k, v in self.__dict__.items() if v is not None}


@dataclass
class PollOption:
    """One poll choice and the identities that picked it."""
    id: str
    text: str
    voters: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PollOption':
        return cls(
            id=str(data['id']),
            text=data.get('text', ''),
            voters=list(data.get('voters') or []),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'text': self.text, 'voters': list(self.voters)}


@dataclass
class Poll:
    """Poll attached to a post at creation time."""
    question: str
    options: List[PollOption]
    allow_multiple: bool = False
    total_votes: int = 0

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional['Poll']:
        if not data:
            return None
        return cls(
            question=data.get('question', ''),
            options=[PollOption.from_dict(o) for o in data.get('options') or []],
            allow_multiple=bool(data.get('allow_multiple', False)),
            total_votes=int(data.get('total_votes', 0)),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'question': self.question,
            'options': [o.to_dict() for o in self.options],
            'allow_multiple': self.allow_multiple,
            'total_votes': self.total_votes,
        }

    def option(self, option_id: str) -> Optional[PollOption]:
        for opt in self.options:
            if opt.id == option_id:
                return opt
        return None


@dataclass
class Comment:
    """A comment embedded in its post document."""
    id: str
    post_id: str
    author: Author
    content: str
    status: PostStatus = PostStatus.NONE
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_dict(cls, data: Dict[str, Any], post_id: str) -> 'Comment':
        return cls(
            id=str(data['id']),
            post_id=post_id,
            author=Author.from_dict(data.get('author')),
            content=data.get('content', ''),
            status=PostStatus(data.get('status') or PostStatus.NONE.value),
            created_at=to_datetime(data.get('created_at')),
        )

    def to_dict(self) -> Dict[str, Any]:
        # post_id is implied by the enclosing document
        return {
            'id': self.id,
            'author': self.author.to_dict(),
            'content': self.content,
            'status': self.status.value,
            'created_at': self.created_at.isoformat(),
        }


@dataclass
class Post:
    """A content item on a board."""
    id: str
    board_id: str
    author: Author
    section_id: Optional[str] = None
    title: str = ""
    content: str = ""
    color: str = "#ffffff"
    attachments: List[Attachment] = field(default_factory=list)
    status: PostStatus = PostStatus.NONE
    likes: int = 0
    order: Optional[float] = None
    poll: Optional[Poll] = None
    comments: List[Comment] = field(default_factory=list)
    position: Optional[Dict[str, float]] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_dict(cls, doc_id: str, board_id: str, data: Dict[str, Any]) -> 'Post':
        return cls(
            id=doc_id,
            board_id=board_id,
            author=Author.from_dict(data.get('author')),
            section_id=data.get('section_id'),
            title=data.get('title', '') or '',
            content=data.get('content', '') or '',
            color=data.get('color') or '#ffffff',
            attachments=[Attachment.from_dict(a) for a in data.get('attachments') or []],
            status=PostStatus(data.get('status') or PostStatus.NONE.value),
            likes=int(data.get('likes') or 0),
            order=data.get('order'),
            poll=Poll.from_dict(data.get('poll')),
            comments=[Comment.from_dict(c, doc_id) for c in data.get('comments') or []],
            position=data.get('position'),
            created_at=to_datetime(data.get('created_at')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'section_id': self.section_id,
            'author': self.author.to_dict(),
            'title': self.title,
            'content': self.content,
            'color': self.color,
            'attachments': [a.to_dict() for a in self.attachments],
            'status': self.status.value,
            'likes': self.likes,
            'order': self.order,
            'poll': self.poll.to_dict() if self.poll else None,
            'comments': [c.to_dict() for c in self.comments],
            'position': self.position,
            'created_at': self.created_at.isoformat(),
        }


@dataclass
class Section:
    """Named, ordered sub-partition of a board."""
    id: str
    board_id: str
    title: str
    order: Optional[float] = None
    color: str = "#6b7280"

    @classmethod
    def from_dict(cls, doc_id: str, board_id: str, data: Dict[str, Any]) -> 'Section':
        return cls(
            id=doc_id,
            board_id=board_id,
            title=data.get('title', ''),
            order=data.get('order'),
            color=data.get('color') or '#6b7280',
        )

    def to_dict(self) -> Dict[str, Any]:
        return {'title': self.title, 'order': self.order, 'color': self.color}


@dataclass
class Board:
    """
    Top-level shared container.

    ``password`` is the legacy cleartext field; boards written by this code
    carry ``password_hash`` instead when hashing is enabled.
    """
    id: str
    title: str
    owner_id: str
    description: str = ""
    privacy: Privacy = Privacy.PUBLIC
    password: str = ""
    password_hash: str = ""
    guest_permission: GuestPermission = GuestPermission.EDIT
    moderation_enabled: bool = False
    default_sort: str = "manual"
    layout: Layout = Layout.SHELF
    background_image: str = ""
    background_color: str = "#1a1a2e"
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_sectioned(self) -> bool:
        return self.layout in SECTIONED_LAYOUTS

    @classmethod
    def from_dict(cls, doc_id: str, data: Dict[str, Any]) -> 'Board':
        return cls(
            id=doc_id,
            title=data.get('title', ''),
            owner_id=data.get('owner_id', ''),
            description=data.get('description', '') or '',
            privacy=Privacy(data.get('privacy') or Privacy.PUBLIC.value),
            password=data.get('password', '') or '',
            password_hash=data.get('password_hash', '') or '',
            guest_permission=GuestPermission(
                data.get('guest_permission') or GuestPermission.EDIT.value
            ),
            moderation_enabled=bool(data.get('moderation_enabled', False)),
            default_sort=data.get('default_sort') or 'manual',
            layout=Layout(data.get('layout') or Layout.SHELF.value),
            background_image=data.get('background_image', '') or '',
            background_color=data.get('background_color') or '#1a1a2e',
            created_at=to_datetime(data.get('created_at')),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'description': self.description,
            'owner_id': self.owner_id,
            'privacy': self.privacy.value,
            'password': self.password,
            'password_hash': self.password_hash,
            'guest_permission': self.guest_permission.value,
            'moderation_enabled': self.moderation_enabled,
            'default_sort': self.default_sort,
            'layout': self.layout.value,
            'background_image': self.background_image,
            'background_color': self.background_color,
            'created_at': self.created_at.isoformat(),
        }


class StorePaths:
    """Builds document store paths under the application prefix."""

    def __init__(self, prefix: str = "ahmo-wall_"):
        self.prefix = prefix

    def boards(self) -> str:
        return f"{self.prefix}boards"

    def board(self, board_id: str) -> str:
        return f"{self.boards()}/{board_id}"

    def sections(self, board_id: str) -> str:
        return f"{self.board(board_id)}/sections"

    def section(self, board_id: str, section_id: str) -> str:
        return f"{self.sections(board_id)}/{section_id}"

    def posts(self, board_id: str) -> str:
        return f"{self.board(board_id)}/posts"

    def post(self, board_id: str, post_id: str) -> str:
        return f"{self.posts(board_id)}/{post_id}"

    def global_config(self) -> str:
        return f"{self.prefix}configs/global"
