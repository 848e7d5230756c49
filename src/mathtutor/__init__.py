"""Gamification and progress engine for the Socratic math tutor."""
