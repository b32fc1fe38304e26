"""
Services Package

Request orchestration shared by the HTTP routers.
"""
