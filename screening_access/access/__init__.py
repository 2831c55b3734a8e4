"""
Access grants issued by clinicians and the screening results linked to them.
"""
