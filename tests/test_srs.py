import math
import random
from datetime import UTC, date, datetime, timedelta, timezone

import pytest

from examito import srs
from examito.models.review import MAX_INTERVAL_DAYS, Rating, ReviewItem


NOW = datetime(2024, 1, 10, 9, 30, tzinfo=UTC)


def _item(**overrides) -> ReviewItem:
    data = {
        "id": "fc:1",
        "front": "mitochondria",
        "back": "powerhouse of the cell",
        "category": "Biology",
        "due_date": datetime(2024, 1, 1, tzinfo=UTC),
    }
    data.update(overrides)
    return ReviewItem(**data)


def test_new_item_defaults():
    item = ReviewItem(id="fc:new", front="f", back="b")
    assert item.interval == 1
    assert item.ease_factor == 2.5
    assert item.review_count == 0


@pytest.mark.parametrize("interval,ease", [(1, 2.5), (12, 1.3), (40, 3.1)])
def test_hard_always_resets_interval(interval, ease):
    item = _item(interval=interval, ease_factor=ease, review_count=4)
    updated = srs.review(item, Rating.hard, now=NOW, is_first_review=False)
    assert updated.interval == 1
    assert updated.ease_factor == pytest.approx(max(1.3, ease - 0.2))


def test_first_review_uses_fixed_intervals():
    item = _item(interval=20, ease_factor=2.8)
    assert srs.review(item, Rating.good, now=NOW, is_first_review=True).interval == 3
    assert srs.review(item, Rating.easy, now=NOW, is_first_review=True).interval == 7


@pytest.mark.parametrize("rating", [Rating.good, Rating.easy])
def test_later_reviews_grow_by_ease_factor(rating):
    item = _item(interval=6, ease_factor=2.35, review_count=2)
    updated = srs.review(item, rating, now=NOW, is_first_review=False)
    assert updated.interval == math.ceil(6 * 2.35)


def test_ease_adjustments():
    item = _item(interval=4, ease_factor=2.0, review_count=1)
    assert srs.review(item, Rating.easy, now=NOW, is_first_review=False).ease_factor == pytest.approx(2.15)
    assert srs.review(item, Rating.good, now=NOW, is_first_review=False).ease_factor == 2.0
    assert srs.review(item, Rating.hard, now=NOW, is_first_review=False).ease_factor == pytest.approx(1.8)


def test_hard_never_drops_below_floor():
    item = _item(ease_factor=1.35)
    updated = srs.review(item, Rating.hard, now=NOW, is_first_review=False)
    assert updated.ease_factor == 1.3


@pytest.mark.parametrize("rating", list(Rating))
@pytest.mark.parametrize("first", [True, False])
def test_due_date_is_interval_days_after_review(rating, first):
    updated = srs.review(_item(interval=5), rating, now=NOW, is_first_review=first)
    assert updated.due_date.date() == NOW.date() + timedelta(days=updated.interval)


def test_floor_invariant_over_random_sequences():
    rng = random.Random(1234)
    item = _item()
    for _ in range(300):
        rating = rng.choice(list(Rating))
        item = srs.review(item, rating, now=NOW, is_first_review=rng.random() < 0.1)
        assert 1 <= item.interval <= MAX_INTERVAL_DAYS
        assert item.ease_factor >= 1.3


def test_repeated_easy_reviews_stay_within_interval_cap():
    item = _item()
    for _ in range(30):
        item = srs.review(item, Rating.easy, now=NOW)
        assert item.interval <= MAX_INTERVAL_DAYS
        assert item.due_date == NOW + timedelta(days=item.interval)
    assert item.interval == MAX_INTERVAL_DAYS
    assert item.ease_factor == pytest.approx(2.5 + 30 * 0.15)


def test_oversized_stored_interval_is_capped_on_input():
    item = _item(interval=1_108_724, review_count=11)
    assert item.interval == MAX_INTERVAL_DAYS
    updated = srs.review(item, Rating.good, now=NOW)
    assert updated.interval == MAX_INTERVAL_DAYS


def test_review_does_not_mutate_input():
    item = _item(interval=3, ease_factor=2.5, review_count=1)
    before = item.model_dump()
    updated = srs.review(item, Rating.easy, now=NOW)
    assert updated is not item
    assert item.model_dump() == before


def test_review_keeps_payload_fields():
    item = _item()
    updated = srs.review(item, Rating.good, now=NOW)
    assert (updated.id, updated.front, updated.back, updated.category) == (
        item.id,
        item.front,
        item.back,
        item.category,
    )


def test_first_review_defaults_to_review_count():
    fresh = _item(interval=10, ease_factor=2.5)
    assert srs.review(fresh, Rating.good, now=NOW).interval == 3

    seen = _item(interval=10, ease_factor=2.5, review_count=1)
    assert srs.review(seen, Rating.good, now=NOW).interval == 25


def test_review_count_increments():
    item = _item(review_count=2)
    assert srs.review(item, Rating.hard, now=NOW).review_count == 3


def test_review_accepts_plain_string_rating():
    updated = srs.review(_item(), "easy", now=NOW, is_first_review=True)
    assert updated.interval == 7


def test_corrupted_values_are_clamped_on_input():
    item = _item(interval=-3, ease_factor=0.9)
    assert item.interval == 1
    assert item.ease_factor == 1.3
    updated = srs.review(item, Rating.good, now=NOW, is_first_review=False)
    assert updated.interval == math.ceil(1 * 1.3)


def test_scenario_good_easy_hard():
    item = _item(interval=1, ease_factor=2.5)
    first_day = datetime(2024, 1, 1, 8, 0, tzinfo=UTC)

    step1 = srs.review(item, Rating.good, now=first_day, is_first_review=True)
    assert (step1.interval, step1.ease_factor) == (3, 2.5)
    assert step1.due_date == first_day + timedelta(days=3)

    second_day = step1.due_date
    step2 = srs.review(step1, Rating.easy, now=second_day, is_first_review=False)
    assert step2.interval == 8
    assert step2.ease_factor == pytest.approx(2.65)
    assert step2.due_date == second_day + timedelta(days=8)

    third_day = step2.due_date
    step3 = srs.review(step2, Rating.hard, now=third_day, is_first_review=False)
    assert step3.interval == 1
    assert step3.ease_factor == pytest.approx(2.45)
    assert step3.due_date == third_day + timedelta(days=1)


def test_select_due_is_date_granular():
    today = datetime(2024, 3, 5, 8, 0, tzinfo=UTC)
    yesterday = _item(id="a", due_date=today - timedelta(days=1))
    later_today = _item(id="b", due_date=today.replace(hour=23, minute=59))
    tomorrow = _item(id="c", due_date=today + timedelta(days=1))

    due = srs.select_due([yesterday, later_today, tomorrow], today)

    assert [item.id for item in due] == ["a", "b"]


def test_select_due_accepts_plain_date():
    items = [
        _item(id="a", due_date=datetime(2024, 3, 5, 22, 0, tzinfo=UTC)),
        _item(id="b", due_date=datetime(2024, 3, 6, 0, 0, tzinfo=UTC)),
    ]
    assert [item.id for item in srs.select_due(items, date(2024, 3, 5))] == ["a"]


def test_select_due_uses_reference_timezone():
    tokyo = timezone(timedelta(hours=9))
    # 2024-03-05 20:00 UTC is already 2024-03-06 in Tokyo
    item = _item(due_date=datetime(2024, 3, 5, 20, 0, tzinfo=UTC))
    assert srs.select_due([item], datetime(2024, 3, 5, 23, 0, tzinfo=tokyo)) == []
    assert srs.select_due([item], datetime(2024, 3, 6, 7, 0, tzinfo=tokyo)) == [item]


def test_select_due_empty_and_no_mutation():
    assert srs.select_due([], NOW) == []
    items = [_item(id="a"), _item(id="b", due_date=NOW + timedelta(days=4))]
    snapshot = [item.model_dump() for item in items]
    srs.select_due(items, NOW)
    assert [item.model_dump() for item in items] == snapshot


def test_select_for_categories_filters_shuffles_and_limits():
    items = [_item(id=f"bio-{i}", category="Biology") for i in range(10)]
    items += [_item(id=f"chem-{i}", category="Chemistry") for i in range(5)]
    items += [_item(id="hist-0", category="History")]
    original_ids = [item.id for item in items]

    deck = srs.select_for_categories(items, ["Chemistry", "History"], limit=4, rng=random.Random(7))

    assert len(deck) == 4
    assert all(item.category in {"Chemistry", "History"} for item in deck)
    assert [item.id for item in items] == original_ids

    again = srs.select_for_categories(items, ["Chemistry", "History"], limit=4, rng=random.Random(7))
    assert [item.id for item in again] == [item.id for item in deck]


def test_select_for_categories_without_matches():
    assert srs.select_for_categories([_item()], ["Physics"], limit=15) == []
