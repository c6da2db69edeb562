"""Application package for the Kerja Praktik (internship) administration backend.

This package exposes the service, repository and model modules used by
the FastAPI application: seminar scheduling, seminar document workflow,
guidance sessions, daily reports and grading.
"""
