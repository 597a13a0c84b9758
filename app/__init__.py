"""
                Food Ordering Order Pipeline

Order intake, status lifecycle and real-time admin fan-out for the
ChaiPark food-ordering platform, with a hybrid Mock/Real collaborator
architecture.

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
