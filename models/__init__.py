"""
Data models module for the Ahmo Wall board core.

This module contains:
- SQLAlchemy ORM model for stored documents
- Board, Section, Post, Comment and Poll domain records
- Store path helpers
"""
