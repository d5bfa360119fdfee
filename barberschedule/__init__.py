"""
barberschedule - appointment scheduling and conflict avoidance for barbershops.
"""

__version__ = "0.1.0"
