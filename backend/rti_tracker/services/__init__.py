"""RTI Tracker services."""
