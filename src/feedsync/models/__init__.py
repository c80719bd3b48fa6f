# src/feedsync/models/__init__.py
"""SQLAlchemy models for the social relational store."""

from .edge import Bookmark, Like
from .group import Group, GroupMember, Notification
from .offline import OfflineBase, OfflineEntity
from .post import Comment, Hashtag, Media, Post, PostHashtag, PostTag, Tag
from .user import Follow, SocialUser

__all__ = [
    "Bookmark", "Like",
    "Group", "GroupMember", "Notification",
    "OfflineBase", "OfflineEntity",
    "Comment", "Hashtag", "Media", "Post", "PostHashtag", "PostTag", "Tag",
    "Follow", "SocialUser",
]
