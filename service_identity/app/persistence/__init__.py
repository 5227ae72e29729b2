"""
Persistence package for the Identity Service.
"""
