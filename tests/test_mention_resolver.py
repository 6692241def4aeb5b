"""
Tests for the Mention Resolver.

These tests verify:
1. Stored mention targets drop self-mentions, unknown users and customers
2. Legacy names resolve against active internal profiles
3. Dispatch-time expansion of roles and everyone mentions
4. Mention picker suggestions
"""

from uuid import uuid4

import pytest

from case_threads.models import CaseType, RootComment, UserRole
from case_threads.services import MentionResolver, ProfileDirectory
from case_threads.services.mention_parser import format_mention, parse_mentions


@pytest.fixture
def resolver(session) -> MentionResolver:
    return MentionResolver(ProfileDirectory(session))


def _comment(author, *, user_ids=(), roles=(), mentions_all=False) -> RootComment:
    return RootComment(
        id=uuid4(),
        case_id=uuid4(),
        case_type=CaseType.PRIVATE,
        root_comment_id=uuid4(),
        author_id=author.id,
        author_name=author.display_name,
        author_role=author.role,
        content="",
        mentioned_user_ids=[str(u) for u in user_ids],
        mentioned_user_names=[],
        mentioned_roles=[r.value for r in roles],
        mentions_all=mentions_all,
    )


class TestResolve:
    """Create-time resolution."""

    async def test_explicit_mentions_keep_order_and_names(self, resolver, people):
        text = (
            f"{format_mention('Tove', people.tove.id)} och "
            f"{format_mention('Tim', people.tim.id)}"
        )

        resolution = await resolver.resolve(parse_mentions(text), uuid4(), people.admin.id)

        assert resolution.user_ids == [people.tove.id, people.tim.id]
        assert resolution.user_names == ["Tove Tekniker", "Tim Tekniker"]
        assert not resolution.roles
        assert resolution.mentions_all is False

    async def test_self_mention_dropped(self, resolver, people):
        text = f"Note to self {format_mention('Anna', people.admin.id)}"

        resolution = await resolver.resolve(parse_mentions(text), uuid4(), people.admin.id)

        assert resolution.is_empty

    async def test_unknown_user_dropped(self, resolver, people):
        text = f"{format_mention('Ghost', uuid4())} {format_mention('Tove', people.tove.id)}"

        resolution = await resolver.resolve(parse_mentions(text), uuid4(), people.admin.id)

        assert resolution.user_ids == [people.tove.id]

    async def test_duplicate_mentions_collapse(self, resolver, people):
        mention = format_mention("Tove", people.tove.id)

        resolution = await resolver.resolve(
            parse_mentions(f"{mention} {mention}"),
            uuid4(),
            people.admin.id,
            tracked_user_ids=[people.tove.id],
        )

        assert resolution.user_ids == [people.tove.id]

    async def test_tracked_picker_ids_without_markup(self, resolver, people):
        resolution = await resolver.resolve([], uuid4(), people.admin.id, tracked_user_ids=[people.tim.id])

        assert resolution.user_ids == [people.tim.id]

    async def test_legacy_name_matches_directory(self, resolver, people):
        resolution = await resolver.resolve(
            parse_mentions("Hej @Tove Tekniker, kolla fällan"), uuid4(), people.admin.id
        )

        assert resolution.user_ids == [people.tove.id]

    async def test_legacy_name_without_match_is_ignored(self, resolver, people):
        resolution = await resolver.resolve(
            parse_mentions("Hej @Okänd Person"), uuid4(), people.admin.id
        )

        assert resolution.is_empty

    async def test_legacy_name_never_matches_customers(self, resolver, people):
        resolution = await resolver.resolve(
            parse_mentions("Hej @Cecilia Kund"), uuid4(), people.admin.id
        )

        assert resolution.is_empty

    async def test_explicit_and_picked_customers_dropped(self, resolver, people):
        text = f"{format_mention('Cecilia', people.customer.id)} {format_mention('Tove', people.tove.id)}"

        resolution = await resolver.resolve(
            parse_mentions(text),
            uuid4(),
            people.admin.id,
            tracked_user_ids=[people.customer.id],
        )

        assert resolution.user_ids == [people.tove.id]

    async def test_roles_and_everyone_are_stored_unexpanded(self, resolver, people):
        resolution = await resolver.resolve(
            parse_mentions("@tekniker @koordinator @alla"), uuid4(), people.admin.id
        )

        assert resolution.user_ids == []
        assert resolution.roles == {UserRole.TECHNICIAN, UserRole.KOORDINATOR}
        assert resolution.mentions_all is True


class TestRecipients:
    """Dispatch-time expansion."""

    async def test_role_expands_to_active_members(self, resolver, people):
        comment = _comment(people.admin, roles=[UserRole.TECHNICIAN])

        recipients = await resolver.recipients_for(comment)

        assert {r.id for r in recipients} == {people.tove.id, people.tim.id}

    async def test_everyone_reaches_internal_users_except_author(self, resolver, people):
        comment = _comment(people.tove, mentions_all=True)

        recipients = await resolver.recipients_for(comment)

        assert {r.id for r in recipients} == {people.admin.id, people.koordinator.id, people.tim.id}

    async def test_user_and_role_overlap_is_deduplicated(self, resolver, people):
        comment = _comment(people.admin, user_ids=[people.tove.id], roles=[UserRole.TECHNICIAN])

        recipients = await resolver.recipients_for(comment)

        ids = [r.id for r in recipients]
        assert len(ids) == len(set(ids)) == 2

    async def test_inactive_explicit_user_skipped(self, resolver, people):
        comment = _comment(people.admin, user_ids=[people.inactive.id, people.tim.id])

        recipients = await resolver.recipients_for(comment)

        assert [r.id for r in recipients] == [people.tim.id]

    async def test_stored_customer_id_not_notified(self, resolver, people):
        comment = _comment(people.admin, user_ids=[people.customer.id, people.tove.id])

        recipients = await resolver.recipients_for(comment)

        assert [r.id for r in recipients] == [people.tove.id]

    async def test_author_in_own_role_not_notified(self, resolver, people):
        comment = _comment(people.tove, roles=[UserRole.TECHNICIAN])

        recipients = await resolver.recipients_for(comment)

        assert [r.id for r in recipients] == [people.tim.id]


class TestSuggestions:
    """Mention picker."""

    async def test_empty_query_lists_all_roles_and_users(self, resolver, people):
        suggestions = await resolver.suggest("", people.admin.id)

        assert [r.keyword for r in suggestions.roles] == ["tekniker", "koordinator", "admin", "alla"]
        counts = {r.keyword: r.member_count for r in suggestions.roles}
        assert counts == {"tekniker": 2, "koordinator": 1, "admin": 1, "alla": 4}
        assert [u.display_name for u in suggestions.users] == [
            "Karl Koordinator",
            "Tim Tekniker",
            "Tove Tekniker",
        ]

    async def test_query_filters_roles_by_prefix_and_users_by_substring(self, resolver, people):
        suggestions = await resolver.suggest("@tek", people.admin.id)

        assert [r.keyword for r in suggestions.roles] == ["tekniker"]
        assert [u.display_name for u in suggestions.users] == ["Tim Tekniker", "Tove Tekniker"]

    async def test_inactive_and_customer_users_never_suggested(self, resolver, people):
        suggestions = await resolver.suggest("", people.admin.id)

        ids = {u.id for u in suggestions.users}
        assert people.inactive.id not in ids
        assert people.customer.id not in ids
