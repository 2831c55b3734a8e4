"""
Authentication module for the screening access service.

This module provides:
- Clinician registration with email verification and resend cooldown
- Clinician login and the password recovery stub
- Patient access-code redemption
- Identity tokens and role checks for the HTTP routes
"""
