"""Fleet Backoffice - administrative web dashboard for a car rental backend."""

__version__ = "0.1.0"
