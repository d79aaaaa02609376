"""
Shared logging and error handling utilities
"""
