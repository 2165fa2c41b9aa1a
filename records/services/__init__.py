"""
Business operations of the records app.

Views, admin actions and management commands call into these modules.
"""
