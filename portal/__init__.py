"""Portal application for the consular services site.

This package contains models, serializers, views and route registrations
for the public service endpoints and the administrative back office.
"""
