"""
Clinic Queue Backend

Patient registration, priority queue ranking and real-time queue display
updates for a walk-in clinic.
"""

__version__ = "1.0.0"
