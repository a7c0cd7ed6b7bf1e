"""Unit tests for CandidateFilter — criteria semantics, exclusions and ordering."""
import pytest

from app.schemas.discovery import FilterCriteria
from app.schemas.profile import Gender, KidsStatus
from app.services.candidate_filter import CandidateFilter
from app.utils.errors import InvalidOperation


@pytest.fixture
def candidate_filter():
    return CandidateFilter()


def _ids(profiles):
    return [p.user_id for p in profiles]


class TestAgeAndGender:
    """Numeric ranges and exact-match dimensions."""

    def test_age_range_is_inclusive(self, candidate_filter, requester, make_profile):
        """Ages [18,25,30,35,40] filtered to 25..35 keep exactly {25,30,35}."""
        pool = [make_profile(f"u{age}", age=age) for age in (18, 25, 30, 35, 40)]
        result = candidate_filter.filter(
            requester, FilterCriteria(min_age=25, max_age=35), pool, set()
        )
        assert {p.age for p in result} == {25, 30, 35}

    def test_gender_filter(self, candidate_filter, requester, make_profile):
        pool = [
            make_profile("m1", gender="male"),
            make_profile("f1", gender="female"),
            make_profile("o1", gender="other"),
        ]
        result = candidate_filter.filter(
            requester, FilterCriteria(gender=Gender.MALE), pool, set()
        )
        assert _ids(result) == ["m1"]

    def test_inverted_age_range_fails_fast(self, candidate_filter, requester, make_profile):
        with pytest.raises(InvalidOperation):
            candidate_filter.filter(
                requester, FilterCriteria(min_age=40, max_age=30), [make_profile("x")], set()
            )

    def test_inverted_height_range_fails_fast(self, candidate_filter, requester):
        with pytest.raises(InvalidOperation):
            candidate_filter.filter(
                requester, FilterCriteria(min_height_cm=190, max_height_cm=160), [], set()
            )

    def test_unknown_zodiac_sign_rejected(self, candidate_filter, requester):
        with pytest.raises(InvalidOperation):
            candidate_filter.filter(
                requester, FilterCriteria(zodiac_signs=frozenset({"ophiuchus"})), [], set()
            )


class TestLocation:
    """city/country form a single case-insensitive substring OR-group."""

    def test_city_or_country(self, candidate_filter, requester, make_profile):
        pool = [
            make_profile("ny", location={"city": "New York", "country": "USA"}),
            make_profile("la", location={"city": "Los Angeles", "country": "USA"}),
            make_profile("to", location={"city": "Toronto", "country": "Canada"}),
            make_profile("nowhere"),
        ]
        criteria = FilterCriteria(city="york", country="canada")
        result = candidate_filter.filter(requester, criteria, pool, set())
        assert set(_ids(result)) == {"ny", "to"}

    def test_blank_location_is_unset(self, candidate_filter, requester, make_profile):
        pool = [make_profile("a"), make_profile("b", location={"city": "Paris"})]
        result = candidate_filter.filter(requester, FilterCriteria(city="  "), pool, set())
        assert set(_ids(result)) == {"a", "b"}


class TestSetValuedAndLifestyle:
    """OR within a set-valued dimension, AND across dimensions."""

    def test_interest_overlap_is_case_insensitive(self, candidate_filter, requester, make_profile):
        pool = [
            make_profile("hiker", interests=["hiking", "Chess"]),
            make_profile("reader", interests=["Reading"]),
        ]
        criteria = FilterCriteria(interests=frozenset({"Hiking", "Travel"}))
        result = candidate_filter.filter(requester, criteria, pool, set())
        assert _ids(result) == ["hiker"]

    def test_dimensions_combine_with_and(self, candidate_filter, requester, make_profile):
        pool = [
            make_profile("both", age=30, lifestyle={"languages": ["French"]}),
            make_profile("lang_only", age=50, lifestyle={"languages": ["French"]}),
            make_profile("age_only", age=30, lifestyle={"languages": ["German"]}),
        ]
        criteria = FilterCriteria(max_age=40, languages=frozenset({"french"}))
        result = candidate_filter.filter(requester, criteria, pool, set())
        assert _ids(result) == ["both"]

    def test_missing_attribute_fails_named_filter(self, candidate_filter, requester, make_profile):
        """A candidate without a recorded height never passes a height filter."""
        pool = [
            make_profile("tall", lifestyle={"height": "6'2\""}),
            make_profile("unknown"),
        ]
        result = candidate_filter.filter(
            requester, FilterCriteria(min_height_cm=170), pool, set()
        )
        assert _ids(result) == ["tall"]

    def test_has_kids_tri_state(self, candidate_filter, requester, make_profile):
        pool = [
            make_profile("yes", lifestyle={"haveKids": True}),
            make_profile("no", lifestyle={"haveKids": False}),
            make_profile("unknown"),
        ]
        only_no = candidate_filter.filter(
            requester, FilterCriteria(has_kids=KidsStatus.NO), pool, set()
        )
        unconstrained = candidate_filter.filter(
            requester, FilterCriteria(has_kids=KidsStatus.UNKNOWN), pool, set()
        )
        assert _ids(only_no) == ["no"]
        assert len(unconstrained) == 3

    def test_lifestyle_strings_match_case_insensitively(self, candidate_filter, requester, make_profile):
        pool = [
            make_profile("social", lifestyle={"drink": "Socially", "smoke": "No"}),
            make_profile("never", lifestyle={"drink": "Never", "smoke": "No"}),
        ]
        criteria = FilterCriteria(drink_frequency="socially", smoke_frequency="NO")
        assert _ids(candidate_filter.filter(requester, criteria, pool, set())) == ["social"]

    def test_video_chat_only(self, candidate_filter, requester, make_profile):
        pool = [
            make_profile("video", preferences={"videoChat": True}),
            make_profile("text"),
        ]
        result = candidate_filter.filter(
            requester, FilterCriteria(video_chat_only=True), pool, set()
        )
        assert _ids(result) == ["video"]


class TestExclusionAndOrdering:

    def test_excluded_and_requester_removed(self, candidate_filter, requester, make_profile):
        pool = [requester, make_profile("bob"), make_profile("carol")]
        result = candidate_filter.filter(requester, FilterCriteria(), pool, {"bob"})
        assert _ids(result) == ["carol"]

    def test_newest_first_with_user_id_tiebreak(self, candidate_filter, requester, make_profile):
        pool = [
            make_profile("old", created_minutes_ago=60),
            make_profile("zed", created_minutes_ago=5),
            make_profile("amy", created_minutes_ago=5),
            make_profile("new", created_minutes_ago=0),
        ]
        result = candidate_filter.filter(requester, FilterCriteria(), pool, set())
        assert _ids(result) == ["new", "amy", "zed", "old"]

    def test_deterministic_regardless_of_pool_order(self, candidate_filter, requester, make_profile):
        pool = [make_profile(f"u{i}", created_minutes_ago=i % 3) for i in range(12)]
        first = candidate_filter.filter(requester, FilterCriteria(), pool, set())
        second = candidate_filter.filter(requester, FilterCriteria(), list(reversed(pool)), set())
        assert _ids(first) == _ids(second)

    def test_inputs_not_mutated(self, candidate_filter, requester, make_profile):
        pool = [make_profile("b", created_minutes_ago=10), make_profile("a")]
        excluded = {"zzz"}
        candidate_filter.filter(requester, FilterCriteria(), pool, excluded)
        assert _ids(pool) == ["b", "a"]
        assert excluded == {"zzz"}
