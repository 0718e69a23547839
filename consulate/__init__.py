"""Django project package for the consular services portal."""
