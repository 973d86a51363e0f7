"""
clinicbook - appointment scheduling for clinic providers.
"""

__version__ = "0.1.0"
