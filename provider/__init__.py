"""awsprov: AWS resource handlers and a local plan/apply engine."""

__version__ = "0.1"
