import bleach
from rest_framework import serializers


class BookingSerializer(serializers.Serializer):
    service = serializers.CharField(max_length=80)
    date = serializers.DateField(input_formats=['%Y-%m-%d'])
    time = serializers.TimeField(input_formats=['%H:%M', '%H:%M:%S'])
    name = serializers.CharField(max_length=255)
    email = serializers.EmailField()
    phone = serializers.CharField(required=False, allow_blank=True, max_length=32, default='')
    passportNo = serializers.CharField(required=False, allow_blank=True, max_length=32, default='')
    purpose = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_name(self, v):
        v = bleach.clean((v or '').strip(), strip=True)
        if len(v) < 2:
            raise serializers.ValidationError('Name must be at least 2 characters')
        return v

    def validate_purpose(self, v):
        return bleach.clean((v or '').strip(), strip=True)

    def validate_phone(self, v):
        return bleach.clean((v or '').strip(), strip=True)

    def validate_passportNo(self, v):
        return bleach.clean((v or '').strip(), strip=True).upper()


class AppointmentStatusSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=['booked', 'confirmed', 'cancelled', 'completed', 'no-show'])


class TimeSlotSerializer(serializers.Serializer):
    startTime = serializers.TimeField(input_formats=['%H:%M', '%H:%M:%S'])
    endTime = serializers.TimeField(input_formats=['%H:%M', '%H:%M:%S'], required=False)
    duration = serializers.IntegerField(min_value=5, max_value=480, required=False, default=30)
    isActive = serializers.BooleanField(required=False, default=True)


class BulkToggleSerializer(serializers.Serializer):
    slotIds = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)
    isActive = serializers.BooleanField()


class SlotSettingsSerializer(serializers.Serializer):
    slotDurationMinutes = serializers.IntegerField(min_value=5, max_value=480, required=False)
    maxAppointmentsPerSlot = serializers.IntegerField(min_value=1, max_value=100, required=False)
    advanceBookingDays = serializers.IntegerField(min_value=1, max_value=365, required=False)
    cancellationHours = serializers.IntegerField(min_value=0, max_value=720, required=False)


class DayScheduleSerializer(serializers.Serializer):
    date = serializers.DateField(input_formats=['%Y-%m-%d'])
    openingTime = serializers.TimeField(input_formats=['%H:%M', '%H:%M:%S'], required=False, allow_null=True)
    closingTime = serializers.TimeField(input_formats=['%H:%M', '%H:%M:%S'], required=False, allow_null=True)
    maxAppointments = serializers.IntegerField(min_value=0, required=False, default=50)
    isHoliday = serializers.BooleanField(required=False, default=False)
    holidayReason = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)
    specialNotes = serializers.CharField(required=False, allow_blank=True, allow_null=True, max_length=255)

    def validate(self, attrs):
        opening, closing = attrs.get('openingTime'), attrs.get('closingTime')
        if opening and closing and opening >= closing:
            raise serializers.ValidationError({'closingTime': 'Closing time must be after opening time'})
        return attrs
