"""
Public appointment endpoints: free slots, booking, lookup and cancellation.

Appointments are looked up by their ``APT...`` reference, which is the
only secret a citizen holds, so detail and cancel require the matching
email address as well.
"""
from __future__ import annotations

from django.shortcuts import get_object_or_404
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response

from ..models import Appointment
from ..serializers.appointments import BookingSerializer
from ..services import appointments as booking
from .common import error


def _owned(request, reference: str) -> Appointment | None:
    appt = get_object_or_404(Appointment.objects.select_related('service'), reference=reference)
    email = (request.query_params.get('email') or request.data.get('email') or '').strip().lower()
    user = request.user if getattr(request.user, 'is_authenticated', False) else None
    if user is not None and (appt.user_id == user.pk or getattr(user, 'is_admin_role', False)):
        return appt
    if email and email == appt.email.lower():
        return appt
    return None


@api_view(['GET'])
@permission_classes([AllowAny])
def available_slots(request):
    day = request.query_params.get('date')
    service_id = request.query_params.get('service') or request.query_params.get('serviceType')
    if not day or not service_id:
        return error('date and service are required')
    try:
        result = booking.availability(day, service_id)
    except booking.BookingError as exc:
        return error(str(exc))
    except LookupError as exc:
        return error(str(exc), 404)
    return Response({'success': True, **result.as_dict()})


@api_view(['GET'])
@permission_classes([AllowAny])
def available_dates(request):
    return Response({'success': True, 'dates': [d.isoformat() for d in booking.bookable_dates()]})


@api_view(['POST'])
@permission_classes([AllowAny])
def book_appointment(request):
    s = BookingSerializer(data=request.data)
    s.is_valid(raise_exception=True)
    vd = s.validated_data
    user = request.user if getattr(request.user, 'is_authenticated', False) else None
    try:
        appt = booking.book(
            service_id=vd['service'], day=vd['date'], start=vd['time'],
            name=vd['name'], email=vd['email'].lower(), phone=vd['phone'],
            passport_no=vd['passportNo'], purpose=vd['purpose'], user=user,
        )
    except booking.BookingError as exc:
        return error(str(exc))
    return Response({
        'success': True,
        'message': 'Appointment booked successfully',
        'appointment': booking.serialize_appointment(appt),
    }, status=201)

book_appointment.throttle_scope = 'booking'


@api_view(['GET'])
@permission_classes([AllowAny])
def appointment_detail(request, reference: str):
    appt = _owned(request, reference)
    if appt is None:
        return error('Appointment not found', 404)
    return Response({'success': True, 'appointment': booking.serialize_appointment(appt)})


@api_view(['POST'])
@permission_classes([AllowAny])
def cancel_appointment(request, reference: str):
    appt = _owned(request, reference)
    if appt is None:
        return error('Appointment not found', 404)
    user = request.user if getattr(request.user, 'is_authenticated', False) else None
    try:
        booking.cancel(appt, user=user)
    except booking.BookingError as exc:
        return error(str(exc))
    return Response({
        'success': True,
        'message': 'Appointment cancelled',
        'appointment': booking.serialize_appointment(appt),
    })
