"""
FastAPI RESTful API for the Book Management System.

This package provides:
- User registration, login and logout
- Bearer token authentication with a logout denylist
- CRUD endpoints for book records stored in MongoDB
"""
