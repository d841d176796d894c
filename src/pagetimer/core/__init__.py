"""Timer, navigation and lifecycle state machines."""
