from rest_framework import serializers


class LoginSerializer(serializers.Serializer):
    username = serializers.CharField(required=False, allow_blank=True, default='')
    password = serializers.CharField(required=False, allow_blank=True, default='', trim_whitespace=False)
    otp = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_otp(self, v):
        return (v or '').strip()


class RefreshSerializer(serializers.Serializer):
    refresh = serializers.CharField()
