"""
dentalslots - appointment slot computation and conflict-safe booking for dental clinics.
"""

__version__ = "0.1.0"
