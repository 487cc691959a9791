"""Administrative panel for database backup archives."""

__version__ = "1.0.0"
