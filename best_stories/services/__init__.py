"""Business logic services.

Services contain all business logic and are called by routes.
Services should be deterministic when possible and accept dependencies explicitly:
the story cache and the upstream client are passed in, never imported as globals.
"""
