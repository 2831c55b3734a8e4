"""
Screening access service.

Clinician accounts with email-code verification, clinician login and
single-use patient access codes that bind screening results to the clinician
who issued them.
"""
