"""
Schemas package for API data models
All Pydantic models for request/response validation
"""
