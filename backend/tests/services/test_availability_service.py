from datetime import time, timedelta

import pytest

from parkzy.core.exceptions import BookingConflictException, ForbiddenException, ValidationException
from parkzy.models.booking import BookingHold, BookingStatus
from parkzy.principal import Caller
from parkzy.services.availability_service import (
    AvailabilityService,
    local_segments,
    subtract_window,
)

from support import TEST_DAY, at


@pytest.fixture
def availability(db) -> AvailabilityService:
    return AvailabilityService(db)


class TestEffectiveWindows:
    def test_weekly_rule_applies_without_override(self, availability, make_spot):
        spot = make_spot(opens=time(8, 0), closes=time(18, 0))

        assert availability.is_available(spot.id, at(9), at(10))
        assert not availability.is_available(spot.id, at(17), at(19))

    def test_day_without_rule_is_closed(self, availability, make_spot):
        spot = make_spot(open_days=(1, 2, 3))

        assert not availability.is_available(spot.id, at(9), at(10))

    def test_whole_day_override_closes_despite_rule(self, availability, make_spot, add_override):
        spot = make_spot()
        add_override(spot, TEST_DAY, is_available=False)

        assert not availability.is_available(spot.id, at(9), at(10))

    def test_whole_day_available_override_opens_closed_day(
        self, availability, make_spot, add_override
    ):
        spot = make_spot(open_days=())
        add_override(spot, TEST_DAY, is_available=True)

        assert availability.is_available(spot.id, at(1), at(23))

    def test_partial_block_only_removes_its_window(self, availability, make_spot, add_override):
        spot = make_spot(opens=time(8, 0), closes=time(20, 0))
        add_override(
            spot, TEST_DAY, is_available=False, start_time=time(12, 0), end_time=time(14, 0)
        )

        assert availability.is_available(spot.id, at(9), at(12))
        assert not availability.is_available(spot.id, at(11), at(13))
        assert availability.is_available(spot.id, at(14), at(16))

    def test_block_until_end_of_day_covers_last_minute(
        self, availability, make_spot, add_override
    ):
        spot = make_spot()
        add_override(
            spot, TEST_DAY, is_available=False, start_time=time(15, 0), end_time=time(23, 59)
        )

        assert availability.is_available(spot.id, at(13), at(15))
        assert not availability.is_available(spot.id, at(23, 30), at(23, 59) + timedelta(minutes=1))

    def test_interval_spanning_midnight_checks_each_date(
        self, availability, make_spot, add_override
    ):
        spot = make_spot()
        add_override(spot, TEST_DAY + timedelta(days=1), is_available=False)

        start = at(22)
        assert availability.is_available(spot.id, start, start + timedelta(hours=2))
        assert not availability.is_available(spot.id, start, start + timedelta(hours=3))

    def test_rules_use_spot_local_time(self, availability, make_spot):
        # 08:00-18:00 in New York is 12:00-22:00 UTC in June
        spot = make_spot(tz="America/New_York", opens=time(8, 0), closes=time(18, 0))

        assert availability.is_available(spot.id, at(12), at(13))
        assert not availability.is_available(spot.id, at(9), at(10))

    def test_inactive_spot_is_never_available(self, availability, make_spot):
        spot = make_spot(status="inactive")

        with pytest.raises(BookingConflictException) as exc_info:
            availability.check_bookable(spot, at(9), at(10))
        assert exc_info.value.details["reason"] == "spot_inactive"


class TestConflicts:
    @pytest.mark.parametrize(
        "status,conflicts",
        [
            (BookingStatus.PENDING, True),
            (BookingStatus.HELD, True),
            (BookingStatus.PAID, True),
            (BookingStatus.ACTIVE, True),
            (BookingStatus.CANCELED, False),
            (BookingStatus.DECLINED, False),
            (BookingStatus.COMPLETED, False),
            (BookingStatus.REFUNDED, False),
        ],
    )
    def test_only_conflict_set_statuses_block(
        self, availability, make_spot, make_booking, status, conflicts
    ):
        spot = make_spot()
        make_booking(spot, at(10), at(12), status=status)

        found = availability.find_conflicting_bookings([spot.id], at(11), at(13))

        assert bool(found) is conflicts

    def test_adjacent_intervals_do_not_conflict(self, availability, make_spot, make_booking):
        spot = make_spot()
        make_booking(spot, at(10), at(12))

        assert availability.find_conflicting_bookings([spot.id], at(12), at(14)) == []
        assert availability.find_conflicting_bookings([spot.id], at(8), at(10)) == []
        assert availability.is_available(spot.id, at(12), at(14))

    def test_conflicts_are_scoped_to_requested_spots(self, availability, make_spot, make_booking):
        first, second = make_spot(), make_spot()
        make_booking(first, at(10), at(12))

        assert availability.find_conflicting_bookings([second.id], at(10), at(12)) == []
        assert len(availability.find_conflicting_bookings([first.id, second.id], at(9), at(11))) == 1

    def test_active_hold_by_another_user_blocks(self, db, availability, make_spot, renter_id):
        spot = make_spot()
        db.add(
            BookingHold(
                spot_id=spot.id,
                user_id="01HOLDER00000000000000000A",
                start_at=at(10),
                end_at=at(11),
                expires_at=at(10) + timedelta(days=365),
                idempotency_key="hold-1",
            )
        )
        db.commit()

        assert not availability.is_available(spot.id, at(10, 30), at(11, 30), now=at(8))
        assert availability.is_available(
            spot.id, at(10, 30), at(11, 30), exclude_user_id="01HOLDER00000000000000000A", now=at(8)
        )

    def test_expired_hold_does_not_block(self, db, availability, make_spot):
        spot = make_spot()
        db.add(
            BookingHold(
                spot_id=spot.id,
                user_id="01HOLDER00000000000000000A",
                start_at=at(10),
                end_at=at(11),
                expires_at=at(7),
                idempotency_key="hold-expired",
            )
        )
        db.commit()

        assert availability.is_available(spot.id, at(10), at(11), now=at(8))

    def test_partition_splits_live_and_upcoming(self, availability, make_spot, make_booking):
        spot = make_spot()
        ended = make_booking(spot, at(6), at(8))
        live = make_booking(spot, at(9), at(15))
        upcoming = make_booking(spot, at(17), at(19))

        partition = availability.partition_bookings([ended, live, upcoming], at(12))

        assert partition.live == [live]
        assert partition.upcoming == [upcoming]


class TestHostWrites:
    def test_replace_weekly_schedule(self, availability, make_spot, host):
        spot = make_spot(open_days=())

        rules = availability.replace_weekly_schedule(
            host,
            spot.id,
            [
                {"day_of_week": 0, "start_time": time(7, 0), "end_time": time(19, 0)},
                {"day_of_week": 5, "start_time": time(9, 0), "end_time": time(12, 0)},
            ],
        )

        assert [r.day_of_week for r in rules] == [0, 5]
        assert availability.is_available(spot.id, at(8), at(9))
        assert len(availability.get_weekly_schedule(spot.id)) == 2

    def test_duplicate_weekday_rejected(self, availability, make_spot, host):
        spot = make_spot()

        with pytest.raises(ValidationException) as exc_info:
            availability.replace_weekly_schedule(
                host,
                spot.id,
                [
                    {"day_of_week": 2, "start_time": time(7, 0), "end_time": time(9, 0)},
                    {"day_of_week": 2, "start_time": time(10, 0), "end_time": time(12, 0)},
                ],
            )
        assert exc_info.value.code == "DUPLICATE_DAY_RULE"
        assert len(availability.get_weekly_schedule(spot.id)) == 7

    def test_inverted_rule_rejected(self, availability, make_spot, host):
        spot = make_spot()

        with pytest.raises(ValidationException) as exc_info:
            availability.replace_weekly_schedule(
                host,
                spot.id,
                [{"day_of_week": 1, "start_time": time(12, 0), "end_time": time(9, 0)}],
            )
        assert exc_info.value.code == "INVALID_RULE_WINDOW"

    def test_only_the_spot_host_may_edit(self, availability, make_spot, renter):
        spot = make_spot()

        with pytest.raises(ForbiddenException):
            availability.replace_weekly_schedule(renter, spot.id, [])
        with pytest.raises(ForbiddenException):
            availability.open_availability(Caller.host("01OTHERHOST000000000000000"), [spot.id], TEST_DAY)

    def test_set_override_replaces_existing(self, availability, make_spot, host):
        spot = make_spot()

        availability.set_override(host, spot.id, TEST_DAY, is_available=False)
        availability.set_override(
            host, spot.id, TEST_DAY, is_available=False, start_time=time(18, 0), end_time=time(23, 59)
        )

        override = availability.get_override(spot.id, TEST_DAY)
        assert override.start_time == time(18, 0)
        assert availability.is_available(spot.id, at(9), at(10))

    def test_delete_override_restores_weekly_rule(self, availability, make_spot, host, add_override):
        spot = make_spot()
        add_override(spot, TEST_DAY, is_available=False)

        assert availability.delete_override(host, spot.id, TEST_DAY) is True
        assert availability.is_available(spot.id, at(9), at(10))

    def test_open_availability_writes_whole_day_override(
        self, availability, make_spot, host, add_override
    ):
        spot = make_spot(open_days=())
        add_override(spot, TEST_DAY, is_available=False)

        overrides = availability.open_availability(host, [spot.id, spot.id], TEST_DAY)

        assert len(overrides) == 1
        assert overrides[0].is_available and overrides[0].is_whole_day
        assert availability.is_available(spot.id, at(0), at(23))


def test_subtract_window_splits_around_block():
    assert subtract_window([(480, 1200)], (720, 840)) == [(480, 720), (840, 1200)]
    assert subtract_window([(480, 600)], (700, 800)) == [(480, 600)]
    assert subtract_window([(480, 600)], (0, 1440)) == []


def test_local_segments_stop_at_midnight_end():
    segments = list(local_segments(at(22), at(0, day=TEST_DAY + timedelta(days=1)), "UTC"))

    assert segments == [(TEST_DAY, 22 * 60, 1440)]
