"""
Calendar, appointment and time slot administration.

Day schedules set opening hours or holidays per date.  Each schedule is
reported with the appointments already booked on it and with the slot
times still free, computed with the public booking rules (whole slot
inside opening hours, day cap, per-time cap) using the office's default
slot length.
"""
from __future__ import annotations

from datetime import datetime

from django.db import IntegrityError, transaction
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from ..models import Appointment, DaySchedule, SlotSettings, TimeSlot
from ..permissions import IsAdminRole
from ..serializers.appointments import (
    AppointmentStatusSerializer,
    BulkToggleSerializer,
    DayScheduleSerializer,
    SlotSettingsSerializer,
    TimeSlotSerializer,
)
from ..services import appointments as booking
from ..services.audit import log_action
from ..services.security import SecurityUtils
from .common import body, error, paginate, parse_int

SCHEDULE_FIELDS = {
    'date': 'date', 'openingTime': 'opening_time', 'closingTime': 'closing_time',
    'maxAppointments': 'max_appointments', 'isHoliday': 'is_holiday',
    'holidayReason': 'holiday_reason', 'specialNotes': 'special_notes',
}


def _serialize_schedule(schedule: DaySchedule, booked_times: list) -> dict:
    booked_labels = sorted({booking.fmt_time(t) for t in booked_times})
    if schedule.is_holiday or booking.day_cap_reached(schedule, len(booked_times)):
        available = []
    else:
        rules = SlotSettings.load()
        active = TimeSlot.objects.filter(is_active=True).order_by('start_time').values_list('start_time', flat=True)
        candidates = booking.within_hours(active, schedule, rules.slot_duration_minutes)
        free = booking.free_times(candidates, booked_times, rules.max_appointments_per_slot)
        available = [booking.fmt_time(t) for t in free]
    return {
        'scheduleId': schedule.id,
        'date': schedule.date.isoformat(),
        'dayOfWeek': (schedule.date.weekday() + 1) % 7,
        'openingTime': booking.fmt_time(schedule.opening_time) if schedule.opening_time else None,
        'closingTime': booking.fmt_time(schedule.closing_time) if schedule.closing_time else None,
        'maxAppointments': schedule.max_appointments,
        'bookedAppointments': len(booked_times),
        'availableSlots': available,
        'bookedSlots': booked_labels,
        'specialNotes': schedule.special_notes,
        'isHoliday': schedule.is_holiday,
        'holidayReason': schedule.holiday_reason or None,
        'created': schedule.created_at.isoformat() if schedule.created_at else None,
        'updated': schedule.updated_at.isoformat() if schedule.updated_at else None,
    }


def _schedules_with_bookings(qs) -> list:
    schedules = list(qs)
    dates = [s.date for s in schedules]
    booked = {}
    rows = Appointment.objects.filter(
        appointment_date__in=dates, status__in=booking.ACTIVE_STATUSES,
    ).values_list('appointment_date', 'start_time')
    for day, start in rows:
        booked.setdefault(day, []).append(start)
    return [_serialize_schedule(s, booked.get(s.date, [])) for s in schedules]


def _assign_schedule(schedule: DaySchedule, vd: dict) -> None:
    for key, attr in SCHEDULE_FIELDS.items():
        if key in vd:
            value = vd[key]
            if attr in ('holiday_reason', 'special_notes') and value is None:
                value = ''
            setattr(schedule, attr, value)


@api_view(['GET', 'POST', 'PUT', 'DELETE'])
@permission_classes([IsAuthenticated, IsAdminRole])
def calendar_schedule(request):
    ip = SecurityUtils.client_ip(request)
    if request.method == 'GET':
        params = request.query_params
        qs = DaySchedule.objects.all().order_by('date')
        try:
            if params.get('date'):
                qs = qs.filter(date=booking.parse_date(params['date']))
            elif params.get('month'):
                month = datetime.strptime(params['month'], '%Y-%m').date()
                qs = qs.filter(date__year=month.year, date__month=month.month)
            elif params.get('startDate') and params.get('endDate'):
                qs = qs.filter(date__gte=booking.parse_date(params['startDate']),
                               date__lte=booking.parse_date(params['endDate']))
        except ValueError:
            return error('Invalid date filter')
        return Response({'success': True, 'schedules': _schedules_with_bookings(qs)})

    if request.method == 'DELETE':
        schedule_id = parse_int(request.query_params.get('scheduleId'), 0, minimum=0)
        if not schedule_id:
            return error('Schedule ID is required')
        deleted, _ = DaySchedule.objects.filter(pk=schedule_id).delete()
        if not deleted:
            return error('Schedule not found', 404)
        log_action(user=request.user, action='SCHEDULE_DELETE', object_type='schedule', object_id=schedule_id, ip=ip)
        return Response({'success': True, 'message': 'Schedule deleted successfully'})

    data = body(request)
    if request.method == 'PUT':
        schedule_id = parse_int(data.get('scheduleId'), 0, minimum=0)
        if not schedule_id:
            return error('Schedule ID is required')
        schedule = DaySchedule.objects.filter(pk=schedule_id).first()
        if schedule is None:
            return error('Schedule not found', 404)
        s = DayScheduleSerializer(data=data, partial=True)
        s.is_valid(raise_exception=True)
        _assign_schedule(schedule, s.validated_data)
        if schedule.opening_time and schedule.closing_time and schedule.opening_time >= schedule.closing_time:
            return error('Closing time must be after opening time')
        try:
            with transaction.atomic():
                schedule.save()
        except IntegrityError:
            return error('A schedule for this date already exists')
        log_action(user=request.user, action='SCHEDULE_UPDATE', object_type='schedule', object_id=schedule.id, ip=ip)
        return Response({'success': True, 'schedule': _schedules_with_bookings([schedule])[0],
                         'message': 'Schedule updated successfully'})

    s = DayScheduleSerializer(data=data)
    s.is_valid(raise_exception=True)
    if DaySchedule.objects.filter(date=s.validated_data['date']).exists():
        return error('A schedule for this date already exists')
    schedule = DaySchedule()
    _assign_schedule(schedule, s.validated_data)
    schedule.save()
    log_action(user=request.user, action='SCHEDULE_CREATE', object_type='schedule', object_id=schedule.id,
               detail={'date': schedule.date.isoformat()}, ip=ip)
    return Response({'success': True, 'schedule': _schedules_with_bookings([schedule])[0],
                     'message': 'Schedule created successfully'}, status=201)


# ---------------------------------------------------------------------
# Appointments
# ---------------------------------------------------------------------
@api_view(['GET'])
@permission_classes([IsAuthenticated, IsAdminRole])
def admin_appointments(request):
    params = request.query_params
    page = parse_int(params.get('page'), 1)
    limit = parse_int(params.get('limit'), 10, maximum=100)
    qs = Appointment.objects.select_related('service').order_by('appointment_date', 'start_time')
    if params.get('date'):
        try:
            qs = qs.filter(appointment_date=booking.parse_date(params['date']))
        except booking.BookingError as exc:
            return error(str(exc))
    if params.get('status') and params['status'] != 'all':
        qs = qs.filter(status=params['status'])
    if params.get('service') and params['service'] != 'all':
        qs = qs.filter(service_id=params['service'])
    items, total, total_pages = paginate(qs, page, limit)
    return Response({
        'success': True,
        'appointments': [booking.serialize_appointment(a) for a in items],
        'pagination': {'page': page, 'limit': limit, 'total': total, 'totalPages': total_pages},
    })


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, IsAdminRole])
def admin_appointment_detail(request, pk: int):
    appt = Appointment.objects.select_related('service', 'user').filter(pk=pk).first()
    if appt is None:
        return error('Appointment not found', 404)
    if request.method == 'GET':
        data = booking.serialize_appointment(appt)
        data.update({
            'endTime': booking.fmt_time(booking.add_minutes(appt.start_time, appt.service.slot_duration)),
            'duration': appt.service.slot_duration,
            'serviceCategory': appt.service.category,
            'processingTime': appt.service.processing_time,
            'userId': appt.user_id,
        })
        return Response({'success': True, 'appointment': data})
    s = AppointmentStatusSerializer(data=body(request))
    s.is_valid(raise_exception=True)
    old_status = appt.status
    appt.status = s.validated_data['status']
    appt.save(update_fields=['status', 'updated_at'])
    log_action(user=request.user, action='appointment_status', object_type='appointment', object_id=appt.reference,
               detail={'from': old_status, 'to': appt.status}, ip=SecurityUtils.client_ip(request))
    return Response({'success': True, 'message': 'Appointment status updated',
                     'appointment': booking.serialize_appointment(appt)})


# ---------------------------------------------------------------------
# Time slots
# ---------------------------------------------------------------------
def _serialize_slot(slot: TimeSlot) -> dict:
    return {
        'slotId': slot.id,
        'startTime': booking.fmt_time(slot.start_time),
        'endTime': booking.fmt_time(slot.end_time),
        'duration': slot.duration,
        'isActive': slot.is_active,
        'createdAt': slot.created_at.isoformat() if slot.created_at else None,
        'updatedAt': slot.updated_at.isoformat() if slot.updated_at else None,
    }


def _serialize_settings(rules: SlotSettings) -> dict:
    return {
        'slotDurationMinutes': rules.slot_duration_minutes,
        'maxAppointmentsPerSlot': rules.max_appointments_per_slot,
        'advanceBookingDays': rules.advance_booking_days,
        'cancellationHours': rules.cancellation_hours,
    }


@api_view(['GET', 'POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def time_slots(request):
    if request.method == 'GET':
        page = parse_int(request.query_params.get('page'), 1)
        limit = parse_int(request.query_params.get('limit'), 50, maximum=200)
        items, total, total_pages = paginate(TimeSlot.objects.all(), page, limit)
        return Response({
            'success': True,
            'slots': [_serialize_slot(s) for s in items],
            'settings': _serialize_settings(SlotSettings.load()),
            'pagination': {'page': page, 'limit': limit, 'total': total, 'totalPages': total_pages},
        })

    s = TimeSlotSerializer(data=body(request))
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    end = vd.get('endTime') or booking.add_minutes(vd['startTime'], vd['duration'])
    if end <= vd['startTime']:
        return error('End time must be after start time')
    if TimeSlot.objects.filter(start_time=vd['startTime']).exists():
        return error('A slot with this start time already exists')
    slot = TimeSlot.objects.create(
        start_time=vd['startTime'], end_time=end, duration=vd['duration'], is_active=vd['isActive'],
    )
    log_action(user=request.user, action='SLOT_CREATE', object_type='time_slot', object_id=slot.id,
               ip=SecurityUtils.client_ip(request))
    return Response({'success': True, 'slotId': slot.id, 'slot': _serialize_slot(slot),
                     'message': 'Time slot created'}, status=201)


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def toggle_time_slot(request, pk: int):
    slot = TimeSlot.objects.filter(pk=pk).first()
    if slot is None:
        return error('Time slot not found', 404)
    slot.is_active = not slot.is_active
    slot.save(update_fields=['is_active', 'updated_at'])
    log_action(user=request.user, action='SLOT_TOGGLE', object_type='time_slot', object_id=slot.id,
               detail={'isActive': slot.is_active}, ip=SecurityUtils.client_ip(request))
    return Response({'success': True, 'message': 'Time slot updated', 'is_active': slot.is_active})


@api_view(['POST'])
@permission_classes([IsAuthenticated, IsAdminRole])
def bulk_toggle_time_slots(request):
    s = BulkToggleSerializer(data=body(request))
    s.is_valid(raise_exception=True)
    updated = TimeSlot.objects.filter(pk__in=s.validated_data['slotIds']).update(is_active=s.validated_data['isActive'])
    log_action(user=request.user, action='SLOT_BULK_TOGGLE', object_type='time_slot',
               detail={'slotIds': s.validated_data['slotIds'], 'isActive': s.validated_data['isActive'],
                       'updated': updated}, ip=SecurityUtils.client_ip(request))
    return Response({'success': True, 'message': f'{updated} time slots updated', 'updated': updated})


@api_view(['GET', 'PUT'])
@permission_classes([IsAuthenticated, IsAdminRole])
def slot_settings(request):
    rules = SlotSettings.load()
    if request.method == 'PUT':
        s = SlotSettingsSerializer(data=body(request))
        s.is_valid(raise_exception=True)
        mapping = {
            'slotDurationMinutes': 'slot_duration_minutes',
            'maxAppointmentsPerSlot': 'max_appointments_per_slot',
            'advanceBookingDays': 'advance_booking_days',
            'cancellationHours': 'cancellation_hours',
        }
        for key, attr in mapping.items():
            if key in s.validated_data:
                setattr(rules, attr, s.validated_data[key])
        rules.save()
        log_action(user=request.user, action='SLOT_SETTINGS_UPDATE', object_type='slot_settings',
                   detail=dict(s.validated_data), ip=SecurityUtils.client_ip(request))
    return Response({'success': True, 'settings': _serialize_settings(rules)})
