"""Tests for scoped and criteria-based user listing."""
from datetime import datetime, timedelta

import pytest

from app.core.areas import AreaScope, AreaScopeResolver, PeerScope
from app.core.errors import ValidationFailure
from app.core.repository import UserRepository
from app.core.user_query import (
    PageRequest,
    PageResult,
    ScopedCriteria,
    ScopedUserQuery,
    UserCriteria,
    UserQuery,
)


@pytest.fixture()
def scoped(db_session, seeded_users):
    resolver = AreaScopeResolver(UserRepository(db_session).areas_of)
    return ScopedUserQuery(db_session, resolver)


def _ids(users):
    return [user.id for user in users]


def _all_pages(query, criteria, size):
    collected, page = [], 0
    while True:
        chunk = query.list(criteria, PageRequest.of(page, size))
        if not chunk:
            return collected
        collected.extend(chunk)
        page += 1


# ─────────────────────────────────────────────────────────────────────────────
# Scope and role floor
# ─────────────────────────────────────────────────────────────────────────────
def test_province_scope_lists_every_user_in_province(scoped):
    criteria = ScopedCriteria(scope=AreaScope(1), min_role_level=0)
    assert _ids(scoped.list(criteria, PageRequest(size=50))) == [5, 1001, 1002, 1003, 1006]


def test_county_scope(scoped):
    criteria = ScopedCriteria(scope=AreaScope(1, 3, 5), min_role_level=0)
    assert _ids(scoped.list(criteria, PageRequest(size=50))) == [1001, 1006]


def test_role_floor_requires_one_qualifying_role(scoped):
    criteria = ScopedCriteria(scope=AreaScope(1), min_role_level=3)
    # alice has only a level-2 role, eve only level 1
    assert _ids(scoped.list(criteria, PageRequest(size=50))) == [1002, 1003, 1006]


def test_peer_scope_uses_peer_areas(scoped):
    criteria = ScopedCriteria(scope=PeerScope(1003), min_role_level=0)
    assert _ids(scoped.list(criteria, PageRequest(size=50))) == [1003, 1006]


def test_peer_scope_of_unknown_user_is_empty(scoped):
    criteria = ScopedCriteria(scope=PeerScope(424242), min_role_level=0)
    assert scoped.list(criteria, PageRequest()) == []
    assert scoped.count(criteria) == 0


# ─────────────────────────────────────────────────────────────────────────────
# Optional filters
# ─────────────────────────────────────────────────────────────────────────────
def test_enabled_filter_is_tri_state(scoped):
    base = dict(scope=AreaScope(1), min_role_level=0)
    assert 1006 not in _ids(scoped.list(ScopedCriteria(enabled=True, **base), PageRequest(size=50)))
    assert _ids(scoped.list(ScopedCriteria(enabled=False, **base), PageRequest(size=50))) == [1006]
    assert scoped.count(ScopedCriteria(enabled=None, **base)) == 5


def test_blurry_matches_username_nickname_or_phone(scoped, seeded_users):
    base = dict(scope=AreaScope(1), min_role_level=0)
    assert _ids(scoped.list(ScopedCriteria(blurry="CAR", **base), PageRequest())) == [1003]
    phone = seeded_users["bob"].phone
    assert _ids(scoped.list(ScopedCriteria(blurry=phone[-4:], **base), PageRequest())) == [1002]


def test_empty_blurry_is_ignored(scoped):
    criteria = ScopedCriteria(scope=AreaScope(1), min_role_level=0, blurry="")
    assert scoped.count(criteria) == 5


def test_whitespace_blurry_is_matched_literally(scoped):
    criteria = ScopedCriteria(scope=AreaScope(1), min_role_level=0, blurry="   ")
    assert scoped.count(criteria) == 0


# ─────────────────────────────────────────────────────────────────────────────
# Count / list consistency
# ─────────────────────────────────────────────────────────────────────────────
@pytest.mark.parametrize("scope,level", [
    (AreaScope(1), 0),
    (AreaScope(1), 3),
    (AreaScope(1, 3), 0),
    (AreaScope(1, 4), 2),
    (PeerScope(1006), 0),
    (AreaScope(9), 0),
])
@pytest.mark.parametrize("size", [1, 2, 3])
def test_count_matches_concatenated_pages(scoped, scope, level, size):
    criteria = ScopedCriteria(scope=scope, min_role_level=level)
    pages = _all_pages(scoped, criteria, size)
    ids = _ids(pages)

    assert scoped.count(criteria) == len(ids)
    assert len(ids) == len(set(ids))
    assert ids == sorted(ids)


def test_user_with_many_areas_and_roles_is_listed_once(scoped):
    # frank joins as 2 areas x 2 roles
    criteria = ScopedCriteria(scope=PeerScope(1006), min_role_level=0)
    ids = _ids(scoped.list(criteria, PageRequest(size=50)))
    assert ids.count(1006) == 1


def test_page_returns_content_and_total(scoped):
    result = scoped.page(ScopedCriteria(scope=AreaScope(1), min_role_level=0), PageRequest.of(1, 2))
    assert isinstance(result, PageResult)
    assert _ids(result.content) == [1002, 1003]
    assert result.total == 5


@pytest.mark.parametrize("offset,size", [(-1, 10), (0, 0)])
def test_invalid_page_request(offset, size):
    with pytest.raises(ValidationFailure):
        PageRequest(offset=offset, size=size)


# ─────────────────────────────────────────────────────────────────────────────
# Generic criteria listing
# ─────────────────────────────────────────────────────────────────────────────
def test_query_all_without_page_returns_list(db_session, seeded_users):
    users = UserQuery(db_session).query_all(UserCriteria())
    assert _ids(users) == [5, 1001, 1002, 1003, 1004, 1006]


def test_query_all_filters(db_session, seeded_users):
    query = UserQuery(db_session)
    assert _ids(query.query_all(UserCriteria(id=1002))) == [1002]
    assert _ids(query.query_all(UserCriteria(blurry="example.com", enabled=False))) == [1006]
    assert query.query_all(UserCriteria(dept_ids=(2,))) == []


def test_query_all_create_time_range(db_session, seeded_users):
    now = datetime.now()
    window = (now - timedelta(days=3650), now + timedelta(days=3650))
    assert len(UserQuery(db_session).query_all(UserCriteria(create_time=window))) == 6


def test_query_all_paged(db_session, seeded_users):
    result = UserQuery(db_session).query_all(UserCriteria(enabled=True), PageRequest.of(0, 2))
    assert _ids(result.content) == [5, 1001]
    assert result.total == 5
