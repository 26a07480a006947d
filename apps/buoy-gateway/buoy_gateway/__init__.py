"""Buoy telemetry gateway, client resilience controller and deployment commands."""
