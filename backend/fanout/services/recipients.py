"""
Recipient resolution: turn a send's target into a concrete, deduplicated set of user ids.

Broadcast -> every user the directory knows right now (snapshot; later sign-ups are not included).
TargetedList -> the given ids, stripped and deduplicated; empty is an error, not a no-op.
"""
from dataclasses import dataclass
from typing import Iterable

from fanout.core.constants import RECIPIENT_ID_MAX_LENGTH
from fanout.core.errors import EmptyTargetError, ValidationError
from fanout.services.directory import UserDirectory


@dataclass(frozen=True)
class Broadcast:
    pass


@dataclass(frozen=True)
class TargetedList:
    user_ids: frozenset[str]

    @classmethod
    def of(cls, user_ids: Iterable[str]) -> "TargetedList":
        return cls(frozenset(user_ids or ()))


Target = Broadcast | TargetedList


class RecipientResolver:
    def __init__(self, directory: UserDirectory):
        self._directory = directory

    def resolve(self, target: Target) -> set[str]:
        if isinstance(target, Broadcast):
            return set(self._directory.all_user_ids())
        recipients = {uid.strip() for uid in target.user_ids if isinstance(uid, str) and uid.strip()}
        if not recipients:
            raise EmptyTargetError()
        too_long = sorted(r for r in recipients if len(r) > RECIPIENT_ID_MAX_LENGTH)
        if too_long:
            raise ValidationError(f"userIds longer than {RECIPIENT_ID_MAX_LENGTH} characters: {too_long[:3]}")
        return recipients
