from datetime import datetime, time, timedelta

import pytest
from django.utils import timezone

from portal.models import Appointment, DaySchedule, SlotSettings, TimeSlot
from portal.services import appointments as booking

from .conftest import next_weekday

pytestmark = pytest.mark.django_db

MONDAY = datetime(2030, 3, 4).date()


def book(service, day, start, **extra):
    return Appointment.objects.create(service=service, appointment_date=day, start_time=start,
                                      name='Test Person', email='t@example.com', **extra)


def free(day, service, today=MONDAY):
    return booking.availability(day, service.service_id, today=today)


def test_all_active_slots_are_offered(service, slots):
    result = free(MONDAY + timedelta(days=1), service)
    assert result.slots == ['09:00', '09:30', '10:00', '10:30']
    assert result.reason is None


def test_inactive_slots_are_not_offered(service, slots):
    TimeSlot.objects.filter(start_time=time(9, 30)).update(is_active=False)
    assert '09:30' not in free(MONDAY + timedelta(days=1), service).slots


@pytest.mark.parametrize('offset,reason', [
    (0, 'at least one day in advance'),
    (-3, 'at least one day in advance'),
    (5, 'closed on weekends'),
    (60, 'days ahead'),
])
def test_dates_outside_the_bookable_window(service, slots, offset, reason):
    result = free(MONDAY + timedelta(days=offset), service)
    assert result.slots == []
    assert reason in result.reason


def test_holiday_closes_the_day(service, slots):
    day = MONDAY + timedelta(days=1)
    DaySchedule.objects.create(date=day, is_holiday=True, holiday_reason='Republic Day')
    result = free(day, service)
    assert result.slots == []
    assert result.reason == 'Republic Day'


def test_service_slot_times_restrict_candidates(service, slots):
    service.slot_times = ['09:30', '10:30', '15:00']
    service.save()
    assert free(MONDAY + timedelta(days=1), service).slots == ['09:30', '10:30']


def test_service_slot_times_used_when_no_time_slots_exist(service):
    service.slot_times = ['11:00', '08:30']
    service.save()
    assert free(MONDAY + timedelta(days=1), service).slots == ['08:30', '11:00']


def test_opening_hours_clip_candidates(service, slots):
    day = MONDAY + timedelta(days=1)
    DaySchedule.objects.create(date=day, opening_time=time(9, 30), closing_time=time(10, 30))
    # 10:00 + 30 minutes fits exactly, 10:30 would end after closing
    assert free(day, service).slots == ['09:30', '10:00']


def test_full_slot_is_removed(service, slots):
    day = MONDAY + timedelta(days=1)
    book(service, day, time(9, 0))
    assert free(day, service).slots == ['09:30', '10:00', '10:30']


def test_cancelled_appointments_do_not_count(service, slots):
    day = MONDAY + timedelta(days=1)
    book(service, day, time(9, 0), status=Appointment.STATUS_CANCELLED)
    assert '09:00' in free(day, service).slots


def test_per_slot_capacity_setting(service, slots):
    rules = SlotSettings.load()
    rules.max_appointments_per_slot = 2
    rules.save()
    day = MONDAY + timedelta(days=1)
    book(service, day, time(9, 0))
    assert '09:00' in free(day, service).slots
    book(service, day, time(9, 0))
    assert '09:00' not in free(day, service).slots


def test_service_daily_limit(service, slots):
    service.max_daily = 2
    service.save()
    day = MONDAY + timedelta(days=1)
    book(service, day, time(9, 0))
    book(service, day, time(9, 30))
    result = free(day, service)
    assert result.slots == []
    assert 'Daily limit' in result.reason


def test_schedule_daily_limit(service, slots):
    day = MONDAY + timedelta(days=1)
    DaySchedule.objects.create(date=day, max_appointments=1)
    book(service, day, time(10, 0))
    assert free(day, service).slots == []


def test_unknown_or_inactive_service(service, slots):
    with pytest.raises(LookupError):
        booking.availability(MONDAY, 'missing', today=MONDAY)
    service.is_active = False
    service.save()
    with pytest.raises(LookupError):
        free(MONDAY + timedelta(days=1), service)


def test_bookable_dates_skip_weekends(db):
    dates = booking.bookable_dates(days=7, today=MONDAY)
    assert [d.weekday() for d in dates] == [1, 2, 3, 4, 0]


# ---------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------
def booking_payload(service, day, at='09:00', **extra):
    data = {'service': service.service_id, 'date': day.isoformat(), 'time': at,
            'name': 'Priya Sharma', 'email': 'Priya@Example.com', 'passportNo': 'z1234567'}
    data.update(extra)
    return data


def test_slots_endpoint(api_client, service, slots, booking_day):
    r = api_client.get('/api/appointments/slots', {'date': booking_day.isoformat(), 'service': service.service_id})
    assert r.status_code == 200
    assert r.data['availableSlots'] == ['09:00', '09:30', '10:00', '10:30']
    assert r.data['date'] == booking_day.isoformat()


def test_slots_endpoint_errors(api_client, service, slots):
    assert api_client.get('/api/appointments/slots', {'service': service.service_id}).status_code == 400
    r = api_client.get('/api/appointments/slots', {'date': '04/03/2030', 'service': service.service_id})
    assert r.status_code == 400
    r = api_client.get('/api/appointments/slots', {'date': '2030-03-05', 'service': 'missing'})
    assert r.status_code == 404


def test_dates_endpoint(api_client, db):
    r = api_client.get('/api/appointments/dates')
    assert r.status_code == 200
    assert r.data['dates']
    assert all(datetime.strptime(d, '%Y-%m-%d').weekday() < 5 for d in r.data['dates'])


def test_book_and_lookup(api_client, service, slots, booking_day):
    r = api_client.post('/api/appointments/book', booking_payload(service, booking_day), format='json')
    assert r.status_code == 201
    appt = r.data['appointment']
    assert appt['reference'].startswith('APT')
    assert appt['email'] == 'priya@example.com'
    assert appt['passportNo'] == 'Z1234567'

    r = api_client.get(f"/api/appointments/{appt['reference']}", {'email': 'priya@example.com'})
    assert r.status_code == 200
    assert r.data['appointment']['time'] == '09:00'
    # the reference alone does not reveal the booking
    assert api_client.get(f"/api/appointments/{appt['reference']}").status_code == 404


def test_taken_slot_cannot_be_booked_twice(api_client, service, slots, booking_day):
    assert api_client.post('/api/appointments/book', booking_payload(service, booking_day),
                           format='json').status_code == 201
    r = api_client.post('/api/appointments/book', booking_payload(service, booking_day, email='x@example.com'),
                        format='json')
    assert r.status_code == 400
    assert r.data['error'] == 'Selected slot is not available'


def test_booking_validation(api_client, service, slots, booking_day):
    r = api_client.post('/api/appointments/book', booking_payload(service, booking_day, email='bad'), format='json')
    assert r.status_code == 400
    assert 'email' in r.data['details']


def test_cancel(api_client, service, slots, booking_day):
    reference = api_client.post('/api/appointments/book', booking_payload(service, booking_day),
                                format='json').data['appointment']['reference']
    r = api_client.post(f'/api/appointments/{reference}/cancel', {'email': 'priya@example.com'}, format='json')
    assert r.status_code == 200
    assert Appointment.objects.get(reference=reference).status == Appointment.STATUS_CANCELLED
    r = api_client.post(f'/api/appointments/{reference}/cancel', {'email': 'priya@example.com'}, format='json')
    assert r.status_code == 400


def test_cancel_refused_inside_cancellation_window(service):
    now = timezone.now()
    start = timezone.localtime(now + timedelta(hours=3))
    appt = book(service, start.date(), start.time().replace(microsecond=0))
    with pytest.raises(booking.BookingError):
        booking.cancel(appt, now=now)


def test_cancel_allowed_outside_cancellation_window(service):
    day = next_weekday(min_days=3)
    appt = book(service, day, time(9, 0))
    booking.cancel(appt)
    appt.refresh_from_db()
    assert appt.status == Appointment.STATUS_CANCELLED
