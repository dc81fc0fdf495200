"""Data models for vehicle state."""

from .vehicle import VehicleState
