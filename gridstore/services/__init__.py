"""
Services built on the gridstore data layer.
"""

from .friends import FriendInfo, FriendsService, parse_universal_identifier

__all__ = ["FriendInfo", "FriendsService", "parse_universal_identifier"]
