"""
Appointment slot availability and booking.

Availability for a (date, service) pair is computed in this order:

1. the service must exist and be active;
2. the date must lie between tomorrow and the advance booking horizon
   and must not fall on a weekend;
3. a holiday schedule closes the day;
4. candidate start times come from the active :class:`TimeSlot` rows,
   restricted to the service's own ``slot_times`` when it defines any;
5. the day's opening hours clip the candidates;
6. the service's daily cap and the day's cap close the day once reached;
7. a time already holding ``max_appointments_per_slot`` bookings is dropped.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import List, Optional

from django.db import transaction
from django.utils import timezone

from portal.models import Appointment, DaySchedule, Service, SlotSettings, TimeSlot

from .audit import log_action
from .realtime import broadcast

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = (Appointment.STATUS_BOOKED, Appointment.STATUS_CONFIRMED,
                   Appointment.STATUS_COMPLETED, Appointment.STATUS_NO_SHOW)


class BookingError(ValueError):
    pass


@dataclass
class Availability:
    date: date
    service_id: str
    slots: List[str] = field(default_factory=list)
    reason: Optional[str] = None

    def as_dict(self) -> dict:
        return {
            'date': self.date.isoformat(),
            'service': self.service_id,
            'availableSlots': self.slots,
            'reason': self.reason,
        }


def parse_date(value) -> date:
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value or ''), '%Y-%m-%d').date()
    except ValueError:
        raise BookingError('Invalid date, expected YYYY-MM-DD')


def parse_time(value) -> time:
    if isinstance(value, time):
        return value
    text = str(value or '').strip()
    for fmt in ('%H:%M', '%H:%M:%S'):
        try:
            return datetime.strptime(text, fmt).time()
        except ValueError:
            continue
    raise BookingError('Invalid time, expected HH:MM')


def fmt_time(value: time) -> str:
    return value.strftime('%H:%M')


def add_minutes(value: time, minutes: int) -> time:
    return (datetime.combine(date(2000, 1, 1), value) + timedelta(minutes=minutes)).time()


def bookable_dates(days: Optional[int] = None, today: Optional[date] = None) -> List[date]:
    """Weekdays from tomorrow through the booking horizon."""
    settings_obj = SlotSettings.load()
    horizon = days if days is not None else settings_obj.advance_booking_days
    today = today or timezone.localdate()
    out = []
    for offset in range(1, horizon + 1):
        day = today + timedelta(days=offset)
        if day.weekday() < 5:
            out.append(day)
    return out


def within_hours(candidates, schedule: Optional[DaySchedule], duration: int) -> List[time]:
    """Keep start times whose whole slot fits the day's opening hours."""
    if schedule and schedule.opening_time and schedule.closing_time:
        return [
            t for t in candidates
            if t >= schedule.opening_time and add_minutes(t, duration) <= schedule.closing_time
        ]
    return list(candidates)


def day_cap_reached(schedule: Optional[DaySchedule], booked_count: int) -> bool:
    return bool(schedule) and booked_count >= schedule.max_appointments


def free_times(candidates, booked_times, per_slot: int) -> List[time]:
    counts = Counter(booked_times)
    return [t for t in candidates if counts.get(t, 0) < per_slot]


def _candidate_times(service: Service) -> List[time]:
    slot_rows = list(TimeSlot.objects.filter(is_active=True).values_list('start_time', flat=True))
    service_times = []
    for raw in service.slot_times or []:
        try:
            service_times.append(parse_time(raw))
        except BookingError:
            logger.warning("Service %s has malformed slot time %r", service.service_id, raw)
    if not slot_rows:
        return sorted(set(service_times))
    if service_times:
        allowed = set(service_times)
        return sorted(t for t in slot_rows if t in allowed)
    return sorted(slot_rows)


def availability(day, service_id: str, today: Optional[date] = None) -> Availability:
    day = parse_date(day)
    service = Service.objects.filter(service_id=service_id, is_active=True).first()
    if service is None:
        raise LookupError('Service not found')
    result = Availability(date=day, service_id=service.service_id)

    rules = SlotSettings.load()
    today = today or timezone.localdate()
    if day <= today:
        result.reason = 'Appointments must be booked at least one day in advance'
        return result
    if day > today + timedelta(days=rules.advance_booking_days):
        result.reason = f'Appointments can only be booked {rules.advance_booking_days} days ahead'
        return result
    if day.weekday() >= 5:
        result.reason = 'The consulate is closed on weekends'
        return result

    schedule = DaySchedule.objects.filter(date=day).first()
    if schedule and schedule.is_holiday:
        result.reason = schedule.holiday_reason or 'Holiday'
        return result

    candidates = within_hours(_candidate_times(service), schedule, service.slot_duration)

    booked = Appointment.objects.filter(appointment_date=day, status__in=ACTIVE_STATUSES)
    if booked.filter(service=service).count() >= service.max_daily:
        result.reason = 'Daily limit reached for this service'
        return result
    if day_cap_reached(schedule, booked.count()):
        result.reason = 'Daily limit reached'
        return result

    booked_times = booked.values_list('start_time', flat=True)
    result.slots = [fmt_time(t) for t in free_times(candidates, booked_times, rules.max_appointments_per_slot)]
    if not result.slots:
        result.reason = 'No slots available'
    return result


def book(*, service_id: str, day, start, name: str, email: str, phone: str = '',
         passport_no: str = '', purpose: str = '', user=None) -> Appointment:
    day = parse_date(day)
    start = parse_time(start)
    with transaction.atomic():
        # Lock the service row so concurrent bookings for it serialise.
        service = Service.objects.select_for_update().filter(service_id=service_id, is_active=True).first()
        if service is None:
            raise BookingError('Service not found')
        slots = availability(day, service_id).slots
        if fmt_time(start) not in slots:
            raise BookingError('Selected slot is not available')
        appt = Appointment.objects.create(
            user=user if getattr(user, 'pk', None) else None,
            service=service,
            appointment_date=day,
            start_time=start,
            name=name,
            email=email,
            phone=phone,
            passport_no=passport_no,
            purpose=purpose,
        )
    logger.info("Appointment %s booked for %s %s", appt.reference, day, fmt_time(start))
    broadcast('appointment.booked', {
        'reference': appt.reference, 'service': service.service_id,
        'date': day.isoformat(), 'time': fmt_time(start),
    })
    return appt


def cancel(appt: Appointment, *, user=None, now: Optional[datetime] = None) -> Appointment:
    if appt.status == Appointment.STATUS_CANCELLED:
        raise BookingError('Appointment already cancelled')
    if appt.status in (Appointment.STATUS_COMPLETED, Appointment.STATUS_NO_SHOW):
        raise BookingError('Appointment can no longer be cancelled')
    rules = SlotSettings.load()
    starts_at = timezone.make_aware(datetime.combine(appt.appointment_date, appt.start_time))
    now = now or timezone.now()
    if starts_at - now < timedelta(hours=rules.cancellation_hours):
        raise BookingError(f'Appointments cannot be cancelled within {rules.cancellation_hours} hours')
    appt.status = Appointment.STATUS_CANCELLED
    appt.save(update_fields=['status', 'updated_at'])
    log_action(user=user, action='appointment_cancel', object_type='appointment', object_id=appt.reference)
    return appt


def serialize_appointment(appt: Appointment) -> dict:
    return {
        'id': appt.id,
        'reference': appt.reference,
        'serviceId': appt.service_id,
        'serviceName': appt.service.title if appt.service_id else None,
        'date': appt.appointment_date.isoformat(),
        'time': fmt_time(appt.start_time),
        'status': appt.status,
        'name': appt.name,
        'email': appt.email,
        'phone': appt.phone,
        'passportNo': appt.passport_no,
        'purpose': appt.purpose,
        'createdAt': appt.created_at.isoformat() if appt.created_at else None,
        'updatedAt': appt.updated_at.isoformat() if appt.updated_at else None,
    }
