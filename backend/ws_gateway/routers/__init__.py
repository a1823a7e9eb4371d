"""
REST routers.
"""
