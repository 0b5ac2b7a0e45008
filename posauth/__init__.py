"""
POS access core: credential verification, lockout, sessions and RBAC.
"""
__version__ = "1.0.0"
