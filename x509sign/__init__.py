"""
X.509 certificate co-signing service.
"""

__version__ = "1.0.0"
