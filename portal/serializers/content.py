import bleach
from rest_framework import serializers

from portal.models import Banner, NotificationTemplate, Service


def _clean(v, tags=frozenset()):
    """Strip markup; ``tags`` lists the tags allowed to survive."""
    return bleach.clean((v or '').strip(), tags=tags, strip=True)


class ServiceSerializer(serializers.Serializer):
    serviceId = serializers.SlugField(max_length=80)
    title = serializers.CharField(max_length=255)
    description = serializers.CharField(required=False, allow_blank=True)
    category = serializers.ChoiceField(choices=[c for c, _ in Service.CATEGORY_CHOICES], required=False)
    isActive = serializers.BooleanField(required=False)
    processingTime = serializers.CharField(required=False, allow_blank=True, max_length=100)
    fee = serializers.CharField(required=False, allow_blank=True, max_length=50)
    feeAmount = serializers.DecimalField(max_digits=10, decimal_places=2, min_value=0, required=False)
    requirements = serializers.ListField(child=serializers.CharField(), required=False)
    slotTimes = serializers.ListField(child=serializers.RegexField(r'^\d{2}:\d{2}$'), required=False)
    slotDuration = serializers.IntegerField(min_value=5, max_value=480, required=False)
    maxDaily = serializers.IntegerField(min_value=0, required=False)

    def validate_title(self, v):
        return _clean(v)

    def validate_description(self, v):
        return _clean(v)


class BannerSerializer(serializers.Serializer):
    title = serializers.CharField(max_length=255)
    subtitle = serializers.CharField(required=False, allow_blank=True, max_length=255)
    content = serializers.CharField(required=False, allow_blank=True)
    type = serializers.ChoiceField(choices=[c for c, _ in Banner.TYPE_CHOICES], required=False)
    isActive = serializers.BooleanField(required=False)
    priority = serializers.IntegerField(min_value=0, required=False)
    startDate = serializers.DateTimeField(required=False, allow_null=True)
    endDate = serializers.DateTimeField(required=False, allow_null=True)
    targetPages = serializers.ListField(child=serializers.CharField(max_length=100), required=False)

    def validate_title(self, v):
        return _clean(v)

    def validate_subtitle(self, v):
        return _clean(v)

    def validate_content(self, v):
        return _clean(v, bleach.ALLOWED_TAGS)

    def validate(self, attrs):
        start, end = attrs.get('startDate'), attrs.get('endDate')
        if start and end and end < start:
            raise serializers.ValidationError({'endDate': 'End date must be after start date'})
        return attrs


class TemplateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    type = serializers.ChoiceField(choices=[c for c, _ in NotificationTemplate.TYPE_CHOICES])
    category = serializers.CharField(required=False, max_length=100)
    subject = serializers.CharField(required=False, allow_blank=True, max_length=255)
    content = serializers.CharField()
    variables = serializers.ListField(child=serializers.CharField(max_length=64), required=False)
    isActive = serializers.BooleanField(required=False)
