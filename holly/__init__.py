"""
Holly Transportation - Backend

Identity and authorization authority for the ride booking service,
with the privileged-action audit trail.
"""

__version__ = "0.1.0"
