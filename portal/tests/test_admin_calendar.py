from datetime import time

import pytest

from portal.models import Appointment, AuditEvent, DaySchedule, SlotSettings, TimeSlot

pytestmark = pytest.mark.django_db

SCHEDULE = '/api/admin/calendar/schedule'


def test_create_schedule_reports_slots(admin_client, service, slots, booking_day):
    Appointment.objects.create(service=service, appointment_date=booking_day, start_time=time(9, 30),
                               name='A', email='a@example.com')
    r = admin_client.post(SCHEDULE, {
        'date': booking_day.isoformat(), 'openingTime': '09:00', 'closingTime': '10:30',
        'maxAppointments': 20, 'specialNotes': 'Short day',
    }, format='json')
    assert r.status_code == 201
    schedule = r.data['schedule']
    assert schedule['bookedAppointments'] == 1
    assert schedule['bookedSlots'] == ['09:30']
    assert schedule['availableSlots'] == ['09:00', '10:00']
    assert AuditEvent.objects.filter(action='SCHEDULE_CREATE').exists()


def test_schedule_slots_must_end_before_closing(admin_client, slots, booking_day):
    r = admin_client.post(SCHEDULE, {
        'date': booking_day.isoformat(), 'openingTime': '09:00', 'closingTime': '10:15',
    }, format='json')
    assert r.data['schedule']['availableSlots'] == ['09:00', '09:30']


def test_schedule_at_day_cap_has_no_free_slots(admin_client, service, slots, booking_day):
    Appointment.objects.create(service=service, appointment_date=booking_day, start_time=time(9, 0),
                               name='A', email='a@example.com')
    r = admin_client.post(SCHEDULE, {
        'date': booking_day.isoformat(), 'openingTime': '09:00', 'closingTime': '11:00', 'maxAppointments': 1,
    }, format='json')
    assert r.data['schedule']['availableSlots'] == []
    public = admin_client.get('/api/appointments/slots',
                              {'date': booking_day.isoformat(), 'service': service.service_id})
    assert public.data['availableSlots'] == []


def test_duplicate_date_and_bad_hours(admin_client, booking_day):
    DaySchedule.objects.create(date=booking_day)
    r = admin_client.post(SCHEDULE, {'date': booking_day.isoformat()}, format='json')
    assert r.status_code == 400
    assert r.data['error'] == 'A schedule for this date already exists'
    r = admin_client.post(SCHEDULE, {'date': '2030-01-02', 'openingTime': '12:00', 'closingTime': '09:00'},
                          format='json')
    assert r.status_code == 400


def test_holiday_has_no_available_slots(admin_client, slots, booking_day):
    r = admin_client.post(SCHEDULE, {'date': booking_day.isoformat(), 'isHoliday': True,
                                     'holidayReason': 'Diwali'}, format='json')
    assert r.data['schedule']['availableSlots'] == []
    assert r.data['schedule']['holidayReason'] == 'Diwali'


def _dates(response):
    return [s['date'] for s in response.data['schedules']]


def test_filters(admin_client):
    for day in ('2030-03-04', '2030-03-20', '2030-04-01'):
        DaySchedule.objects.create(date=day)
    assert _dates(admin_client.get(SCHEDULE, {'date': '2030-03-20'})) == ['2030-03-20']
    assert _dates(admin_client.get(SCHEDULE, {'month': '2030-03'})) == ['2030-03-04', '2030-03-20']
    assert _dates(admin_client.get(SCHEDULE, {'startDate': '2030-03-10', 'endDate': '2030-04-30'})) == [
        '2030-03-20', '2030-04-01']
    assert admin_client.get(SCHEDULE, {'month': 'March'}).status_code == 400


def test_update_and_delete(admin_client):
    schedule = DaySchedule.objects.create(date='2030-03-04')
    r = admin_client.put(SCHEDULE, {'scheduleId': schedule.id, 'isHoliday': True}, format='json')
    assert r.status_code == 200
    schedule.refresh_from_db()
    assert schedule.is_holiday
    assert admin_client.put(SCHEDULE, {'scheduleId': 999}, format='json').status_code == 404
    assert admin_client.delete(f'{SCHEDULE}?scheduleId={schedule.id}').status_code == 200
    assert admin_client.delete(f'{SCHEDULE}?scheduleId={schedule.id}').status_code == 404


def test_admin_appointments_list_and_status(admin_client, service, booking_day):
    appt = Appointment.objects.create(service=service, appointment_date=booking_day, start_time=time(9, 0),
                                      name='A', email='a@example.com')
    Appointment.objects.create(service=service, appointment_date=booking_day, start_time=time(9, 30),
                               name='B', email='b@example.com', status='cancelled')
    r = admin_client.get('/api/admin/appointments', {'status': 'booked'})
    assert r.data['pagination']['total'] == 1
    assert r.data['appointments'][0]['reference'] == appt.reference

    r = admin_client.get(f'/api/admin/appointments/{appt.id}')
    assert r.data['appointment']['endTime'] == '09:30'

    r = admin_client.put(f'/api/admin/appointments/{appt.id}', {'status': 'completed'}, format='json')
    assert r.status_code == 200
    appt.refresh_from_db()
    assert appt.status == 'completed'
    assert admin_client.put(f'/api/admin/appointments/{appt.id}', {'status': 'lost'},
                            format='json').status_code == 400
    assert admin_client.get('/api/admin/appointments/99999').status_code == 404


def test_time_slot_management(admin_client, slots):
    r = admin_client.get('/api/admin/time-slots')
    assert len(r.data['slots']) == 4
    assert r.data['settings']['maxAppointmentsPerSlot'] == 1
    assert r.data['pagination']['total'] == 4

    r = admin_client.post('/api/admin/time-slots', {'startTime': '14:00', 'duration': 45}, format='json')
    assert r.status_code == 201
    assert r.data['slot']['endTime'] == '14:45'
    assert admin_client.post('/api/admin/time-slots', {'startTime': '14:00'}, format='json').status_code == 400

    slot = slots[0]
    r = admin_client.post(f'/api/admin/time-slots/{slot.id}/toggle')
    assert r.data['is_active'] is False
    r = admin_client.post(f'/api/admin/time-slots/{slot.id}/toggle')
    assert r.data['is_active'] is True

    r = admin_client.post('/api/admin/time-slots/bulk-toggle',
                          {'slotIds': [s.id for s in slots], 'isActive': False}, format='json')
    assert r.data['updated'] == 4
    assert not TimeSlot.objects.filter(pk__in=[s.id for s in slots], is_active=True).exists()


def test_slot_settings(admin_client):
    r = admin_client.put('/api/admin/time-slots/settings',
                         {'maxAppointmentsPerSlot': 3, 'advanceBookingDays': 60}, format='json')
    assert r.status_code == 200
    rules = SlotSettings.load()
    assert rules.max_appointments_per_slot == 3
    assert rules.advance_booking_days == 60
    assert admin_client.put('/api/admin/time-slots/settings', {'cancellationHours': -1},
                            format='json').status_code == 400
