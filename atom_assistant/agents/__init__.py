"""
Assistant agent skills.

Skills are reusable policies used by the turn pipeline: conversation
summarization and error recovery.
"""
