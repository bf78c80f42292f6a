"""
Users: development fixtures and the SQL needed to seed them.
"""
