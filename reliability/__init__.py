"""
Incident lifecycle and repair orchestration for the asset platform's operations center.
"""

__version__ = "1.0.0"
