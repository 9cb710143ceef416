from datetime import timedelta

from sqlalchemy import select, func

from transportapp.models.departure_template import DepartureTemplate
from transportapp.models.trip import Trip
from transportapp.services import trip_service
from transportapp.services.reservation_service import create_reservation
from transportapp.utils import timezone as tz


def test_listing_an_untouched_date_shows_full_capacity_and_creates_nothing(db, template, tomorrow):
    slots = trip_service.list_availability(db, tomorrow.isoformat(), "VIC_TO_LLE")
    assert [s["time"] for s in slots] == ["08:00", "10:00"]
    assert all(s["available"] == 6 for s in slots)
    assert db.execute(select(func.count(Trip.id))).scalar_one() == 0


def test_past_dates_have_no_availability(db, template):
    yesterday = tz.today() - timedelta(days=1)
    assert trip_service.list_availability(db, yesterday, "VIC_TO_LLE") == []


def test_availability_reflects_reservations_and_seat_filter(db, make_input, template, tomorrow):
    create_reservation(db, make_input(seats=4))
    slots = {s["time"]: s["available"] for s in trip_service.list_availability(db, tomorrow, "VIC_TO_LLE")}
    assert slots == {"08:00": 2, "10:00": 6}

    slots = trip_service.list_availability(db, tomorrow, "VIC_TO_LLE", seats_wanted=3)
    assert [s["time"] for s in slots] == ["10:00"]


def test_packages_do_not_consume_seats(db, make_input, template, tomorrow):
    r = create_reservation(db, make_input(type="PACKAGE", package_details="2 boxes", seats=3))
    assert trip_service.used_seats(db, r.trip_id) == 0
    assert trip_service.compute_available(db, r.trip_id) == 6


def test_roster_size_wins_over_declared_seats(db, make_input, template):
    r = create_reservation(db, make_input(seats=2, passenger_names=["Ana", "Luis"]))
    assert trip_service.used_seats(db, r.trip_id) == 2


def test_get_or_create_trip_is_idempotent(db, template, tomorrow):
    a = trip_service.get_or_create_trip(db, template.id, tomorrow)
    b = trip_service.get_or_create_trip(db, template.id, tomorrow)
    db.commit()
    assert a.id == b.id
    assert db.execute(select(func.count(Trip.id))).scalar_one() == 1


def test_capacity_is_clamped_to_system_maximum(db, tomorrow):
    t = DepartureTemplate(direction="LLE_TO_VIC", depart_time="12:00", capacity_passengers=10, active=True)
    db.add(t)
    db.commit()
    slots = trip_service.list_availability(db, tomorrow, "LLE_TO_VIC")
    assert slots[0]["available"] == 6


def test_inactive_templates_are_hidden(db, template, tomorrow):
    db.get(DepartureTemplate, template.id).active = False
    db.commit()
    slots = trip_service.list_availability(db, tomorrow, "VIC_TO_LLE")
    assert [s["time"] for s in slots] == ["10:00"]
