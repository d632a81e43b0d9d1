"""
Services package
Business logic for session custody and activation onboarding
"""
