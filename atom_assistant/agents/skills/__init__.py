"""
Agent Skills Package

Skills are reusable, composable functions shared by the conversation store
and the turn orchestrator.
"""
